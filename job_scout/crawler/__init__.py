"""job_scout.crawler: загрузка страниц, браузерный пул, фильтр ссылок и воркер очереди."""
