from importlib import import_module

__all__ = [
    "XpDistributionJob",
    "DistributionSummary",
    "build_sql_job",
    "SqlXpStore",
]

_LAZY_EXPORTS = {
    "XpDistributionJob": ("services.xp_distribution", "XpDistributionJob"),
    "DistributionSummary": ("services.xp_distribution", "DistributionSummary"),
    "build_sql_job": ("services.xp_distribution", "build_sql_job"),
    "SqlXpStore": ("services.xp_store", "SqlXpStore"),
}


def __getattr__(name):
    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module 'services' has no attribute {name!r}")

    module_name, attr_name = _LAZY_EXPORTS[name]
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
