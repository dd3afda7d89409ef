from .demo import (  # noqa: F401
    bootstrap_session,
    demonstrate_conflict,
    run_demo,
    seed_sample_data,
)

__all__ = [
    "bootstrap_session",
    "seed_sample_data",
    "demonstrate_conflict",
    "run_demo",
]
