# Workers: separate processes that use the DB as shared state.
# Run from backend/ with:
#   python -m workers.xp_distribution_worker
