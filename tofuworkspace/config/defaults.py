"""
Default settings for the workspace provider.

These are the default values used when no configuration file or
environment override exists.
"""

DEFAULT_SETTINGS = {
    "version": "1.0.0",

    # Root of the per-Workspace working directories
    "tf_dir": "/tofu",

    # Root of the transient credentials tree (<tmp_root>/<tf_dir>/<uid>)
    "tmp_root": "/tmp",

    # OpenTofu binary
    "tofu_binary": "tofu",

    # Shared provider plugin cache; empty means <tf_dir>/plugin-cache
    "plugin_cache_dir": "",

    # How long one reconcile pass (module fetch and tofu commands) may run
    "timeout_seconds": 1200,

    # How often an individual Workspace is checked for drift
    "poll_interval_seconds": 600,

    # How often orphaned working directories are collected
    "gc_interval_seconds": 3600,

    # Maximum number of concurrent reconcile passes
    "max_reconcile_rate": 1,

    # Logging
    "debug": False,
    "log_file": False,
}

# Environment variable -> (setting key, type)
ENV_OVERRIDES = {
    "XP_TF_DIR": ("tf_dir", str),
    "TOFU_BINARY": ("tofu_binary", str),
    "TOFU_TIMEOUT": ("timeout_seconds", int),
    "TOFU_MAX_RECONCILE_RATE": ("max_reconcile_rate", int),
    "TOFU_DEBUG": ("debug", bool),
}
