"""Unit tests for config utility helpers."""

from __future__ import annotations

from omegaconf import OmegaConf

from job_sub.utils import config_utils as cu


def test_ensure_resolvers_registers_env_resolver(monkeypatch) -> None:
    cu.ensure_resolvers()
    cu.ensure_resolvers()
    monkeypatch.setenv("AL_TEST_VALUE", "42")

    cfg = OmegaConf.create(
        {"value": "${env:AL_TEST_VALUE}", "fallback": "${env:AL_TEST_MISSING,7}"}
    )

    assert OmegaConf.has_resolver("env")
    assert cfg.value == "42"
    assert str(cfg.fallback) == "7"
