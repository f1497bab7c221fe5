"""
Hydra entrypoint for active transfer learning experiments.

Run `python job_sub/run_config.py` for a single job, or add `-m` with
comma-separated overrides (e.g. `dataset=toy,file`) to sweep.
"""

import hydra
from omegaconf import OmegaConf

from job_sub.utils.config_utils import ensure_resolvers
from job_sub.utils.seed_jobs import run_seed_jobs

ensure_resolvers()


@hydra.main(version_base=None, config_path="conf", config_name="config")
def run_one_job(cfg):
    """Run all seeds of one configuration (Hydra entrypoint)."""
    print(OmegaConf.to_yaml(cfg.al_settings))
    run_seed_jobs(cfg)


if __name__ == "__main__":
    run_one_job()
