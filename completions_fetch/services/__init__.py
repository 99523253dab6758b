"""Services package - completion fetchers."""

from completions_fetch.services.fake import SyntheticCompletionFetcher
from completions_fetch.services.fetcher import (
    CompletionFetcher,
    LiveCompletionFetcher,
    post_process_choices,
)

__all__ = [
    "CompletionFetcher",
    "LiveCompletionFetcher",
    "SyntheticCompletionFetcher",
    "post_process_choices",
]
