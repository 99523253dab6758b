"""
Streaming package.

Decodes the completions event stream into finished choices:

- decoder: SSEProcessor, the per-response state machine
- accumulator: per-choice accumulation
- annotations / tool_calls: fragment mergers
- oracle: block-completion decision contract
- choices: truncation and mean log-probabilities
"""

from completions_fetch.streaming.choices import prepare_solution_for_return
from completions_fetch.streaming.decoder import SSEProcessor, split_chunk
from completions_fetch.streaming.oracle import (
    BlockCompletionOracle,
    RequestDelta,
    SolutionDecision,
    never_finished,
)

__all__ = [
    "SSEProcessor",
    "split_chunk",
    "prepare_solution_for_return",
    "BlockCompletionOracle",
    "RequestDelta",
    "SolutionDecision",
    "never_finished",
]
