"""job_scout.agent: классификатор страниц и цикл принятия решений."""
