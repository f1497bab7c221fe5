"""
Active transfer learning experiment for per-resident binary classification.

A community model is trained on source residents; every configured
learner is then run on each target resident, starting either from flat
priors or from the transferred community beliefs.
"""

import json
import logging
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
from hydra.core.hydra_config import HydraConfig
from hydra.utils import instantiate
from omegaconf import ListConfig, OmegaConf

from core.data_loader import DataLoader, DataSet
from core.distributions import Gamma, Gaussian
from core.experiment import Experiment
from core.marginals import Marginals
from core.query_strategies import create_learners
from core.round_tracker import RoundTracker
from core.toy_data import ToyData

logger = logging.getLogger(__name__)


def run_one_experiment(
    cfg: dict[str, Any],
) -> dict[str, Any]:
    """
    Run a single experiment with given configuration.

    Args:
        cfg: Dictionary containing all experiment parameters

    Returns:
        Dictionary containing the results summary
    """

    # Extract active learning settings
    al_settings = cfg.al_settings
    output_dir = al_settings.get("output_dir", None)
    if output_dir is None:
        raise ValueError("al_settings.output_dir must be provided in the config.")
    output_dir_path = Path(output_dir)
    output_dir_path.mkdir(parents=True, exist_ok=True)
    experiment_name = cfg.get("experiment_name", "")
    seed = al_settings.get("seed", 0)
    logger.info(
        "RUN_CONTEXT experiment_name=%s seed=%s output_dir=%s",
        experiment_name,
        seed,
        output_dir_path,
    )

    try:
        model = instantiate(cfg.model)
        source_set, pool_set, holdout_set = load_data_sets(cfg.dataset, seed)
        priors = Marginals.create_priors(pool_set.num_features, **cfg.priors)

        active_steps = al_settings.get("active_steps", 50)
        seed_per_class = al_settings.get("seed_per_class", 0)
        update_iterations = al_settings.get("update_iterations", 50)
        transfer_settings = list(al_settings.get("transfer", [False]))

        # Community model on the source residents
        community = Experiment(model, name="Community")
        community_posteriors = community.run_batch(
            source_set, priors, al_settings.get("community_iterations", 1)
        )
        transfer_priors = community_posteriors.with_precisions_from(priors)

        holdout_frames = []
        if al_settings.get("run_online", False):
            for transfer in transfer_settings:
                name = _experiment_label("ONLINE", transfer)
                online = Experiment(
                    model,
                    name=name,
                    online_iterations=al_settings.get("online_iterations", 10),
                )
                online.run_online(
                    pool_set, holdout_set, transfer_priors if transfer else priors
                )
                holdout_frames.append(_label_frame(online.holdout_metrics, name))

        round_tracker = RoundTracker()
        for transfer in transfer_settings:
            for key, learner_cfg in cfg.learners.items():
                name = _experiment_label(str(key), transfer)
                factory = instantiate(learner_cfg)
                learners = create_learners(factory, pool_set, seed=seed)
                experiment = Experiment(
                    model,
                    name=name,
                    learners=learners,
                    round_tracker=round_tracker,
                    update_iterations=update_iterations,
                )
                experiment.run_active(
                    pool_set,
                    holdout_set,
                    active_steps,
                    transfer_priors if transfer else priors,
                    seed_per_class=seed_per_class,
                )
                holdout_frames.append(_label_frame(experiment.holdout_metrics, name))

        # Save individual results
        round_tracker.save_to_csv(output_path=output_dir_path / "results.csv")
        if holdout_frames:
            pd.concat(holdout_frames).to_csv(
                output_dir_path / "holdout_metrics.csv", index=False
            )

        # Compute summary metrics
        summary_metrics = (
            round_tracker.compute_summary_metrics() if round_tracker.rounds else {}
        )
    except Exception:
        error_path = output_dir_path / "error.txt"
        error_details = [
            f"timestamp: {datetime.now().isoformat(timespec='seconds')}",
            f"experiment_name: {experiment_name}",
            f"seed: {seed}",
            "",
            traceback.format_exc(),
        ]
        error_path.write_text("\n".join(error_details))
        raise

    summary = {
        "experiment_name": experiment_name,
        "dataset": cfg.dataset.get("kind", ""),
        "seed": seed,
        "num_residents": pool_set.num_residents,
        "num_features": pool_set.num_features,
        "active_steps": active_steps,
        "seed_per_class": seed_per_class,
        "learners": [str(key) for key in cfg.learners.keys()],
        "summary_by_experiment": summary_metrics,
        "hydra_overrides": _collect_hydra_overrides(cfg),
    }

    # Persist summary for downstream aggregation
    summary_path = output_dir_path / "summary.json"
    summary_path.write_text(json.dumps(summary, indent=2))

    return summary


def load_data_sets(dataset_cfg: Any, seed: int) -> tuple[DataSet, DataSet, DataSet]:
    """
    Build the source, pool and holdout data sets described by `dataset_cfg`.

    `kind: toy` generates hierarchical synthetic data; `kind: file` loads a
    JSON or CSV file and splits the target subjects into pool and holdout.
    """
    kind = dataset_cfg.get("kind", "toy")
    if kind == "toy":
        return _toy_data_sets(dataset_cfg, seed)
    if kind == "file":
        return _file_data_sets(dataset_cfg)
    raise ValueError(f"Unsupported dataset kind '{kind}'. Use 'toy' or 'file'.")


def _toy_data_sets(dataset_cfg: Any, seed: int) -> tuple[DataSet, DataSet, DataSet]:
    def make_toy(offset: int) -> ToyData:
        return ToyData(
            num_residents=dataset_cfg.num_residents,
            num_features=dataset_cfg.num_features,
            use_bias=dataset_cfg.get("use_bias", False),
            true_prior_mean=Gaussian(**dataset_cfg.true_prior_mean),
            true_prior_precision=Gamma(**dataset_cfg.true_prior_precision),
            seed=seed * 3 + offset,
        )

    source = make_toy(0)
    source_set = source.generate(0.0, dataset_cfg.source_instances)
    target = make_toy(1)
    pool_set = target.generate(
        dataset_cfg.get("noisy_proportion", 0.0), dataset_cfg.num_instances
    )
    holdout_set = target.generate(0.0, dataset_cfg.holdout_instances, holdout=True)
    if source_set is None or pool_set is None or holdout_set is None:
        raise ValueError("Toy data sets must have at least one instance per resident")
    return source_set, pool_set, holdout_set


def _file_data_sets(dataset_cfg: Any) -> tuple[DataSet, DataSet, DataSet]:
    loader = DataLoader(str(dataset_cfg.path)).load()
    selected = list(dataset_cfg.get("selected_features", None) or [])
    add_bias = dataset_cfg.get("add_bias", False)
    keep_proportion = dataset_cfg.get("keep_proportion", 1.0)
    source_set = loader.get_dataset(
        list(dataset_cfg.source_subjects), add_bias, selected, keep_proportion
    )
    target_set = loader.get_dataset(
        list(dataset_cfg.target_subjects), add_bias, selected, keep_proportion
    )
    pool_set, holdout_set = target_set.split_train_test(
        dataset_cfg.get("train_proportion", 0.5)
    )
    return source_set, pool_set, holdout_set


def _experiment_label(name: str, transfer: bool) -> str:
    return f"{name}_TRANSFER" if transfer else name


def _label_frame(collection: Any, name: str) -> pd.DataFrame:
    if collection is None or collection.aggregates is None:
        return pd.DataFrame({"experiment": []})
    frame = collection.aggregates.reset_index()
    frame.insert(0, "experiment", name)
    return frame


def _collect_hydra_overrides(cfg: Any) -> list[str]:
    """Return the Hydra override strings recorded for this task."""
    stored_overrides = OmegaConf.select(cfg, "hydra_overrides", default=None)
    if stored_overrides is not None:
        return _normalize_override_values(stored_overrides)
    if HydraConfig.initialized():
        task_overrides = HydraConfig.get().overrides.task
        if task_overrides:
            return [str(item) for item in task_overrides]
    return []


def _normalize_override_values(value: Any) -> list[str]:
    """Normalize Hydra override containers to a list of strings."""
    if value is None:
        return []
    if isinstance(value, (ListConfig, list)):
        return [str(item) for item in value]
    return [str(value)]
