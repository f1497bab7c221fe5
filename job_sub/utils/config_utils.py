"""Shared helpers for Hydra/OmegaConf configuration handling."""

import os

from omegaconf import OmegaConf

_resolvers_registered = False


def ensure_resolvers() -> None:
    """Register custom OmegaConf resolvers once."""
    global _resolvers_registered
    if _resolvers_registered:
        return

    if not OmegaConf.has_resolver("env"):
        OmegaConf.register_new_resolver(
            "env",
            lambda key, default=None: os.environ.get(key, default),
            use_cache=False,
        )

    _resolvers_registered = True

