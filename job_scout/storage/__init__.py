"""job_scout.storage: JSON-хранилище найденных вакансий."""

from job_scout.storage.results import ResultRecord, ResultStore, merge_records

__all__ = ["ResultRecord", "ResultStore", "merge_records"]
