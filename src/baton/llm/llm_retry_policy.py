from tenacity import retry_if_exception, wait_exponential_jitter

from baton.llm.llm_error_mapper import is_transient_llm_error

def default_retry_condition():
    """Return the tenacity condition that retries transient provider failures."""

    return retry_if_exception(is_transient_llm_error)


def default_wait_strategy():
    """Return the default tenacity wait strategy."""

    return wait_exponential_jitter(initial=1.0, max=8.0)
