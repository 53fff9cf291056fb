from .gateway import AssistConfig, AssistResult, Usage, improve, list_usage_records, load_assist_config, usage_today

__all__ = [
    "AssistConfig",
    "AssistResult",
    "Usage",
    "improve",
    "list_usage_records",
    "load_assist_config",
    "usage_today",
]
