"""job_scout.parser: извлечение сигналов из HTML."""
