from checkwatch.github.api import API, client_for_account, job_logs_url

__all__ = ["API", "client_for_account", "job_logs_url"]
