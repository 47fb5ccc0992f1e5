from .db import (
    Base,
    SqlHistoryStore,
    SqlMedicationStore,
    create_all,
    delete_medication,
    dispose_engine,
    fetch_history_for_medication,
    fetch_history_range,
    fetch_medication,
    fetch_medications,
    insert_history,
    insert_medication,
    update_history,
)  # noqa: F401
