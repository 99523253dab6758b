"""
Choice finalisation.

Turns a FinishedCompletion from the stream decoder into the APIChoice handed
to the caller: the text is truncated at the oracle's finish offset and mean
log-probabilities are computed from the first tokens of the choice.
"""

import logging
import uuid
from typing import Optional

from completions_fetch.models.responses import APIChoice, APIJsonData, FinishedCompletion, RequestId

logger = logging.getLogger(__name__)


MEAN_LOGPROB_TOKEN_LIMIT = 50
"""Only the first tokens count, so longer choices are not up-ranked."""


def prepare_solution_for_return(completion: FinishedCompletion) -> APIChoice:
    """Truncate a finished completion at its finish offset and convert it to an APIChoice."""
    completion_text = completion.solution.text
    block_finished = False
    if completion.finish_offset is not None:
        logger.debug("Solution %s: early finish at offset %s", completion.index, completion.finish_offset)
        completion_text = completion_text[: completion.finish_offset]
        block_finished = True

    logger.info("Solution %s returned. Finish reason: [%s]", completion.index, completion.reason)
    return convert_to_api_choice(
        completion_text,
        completion.solution,
        completion.index,
        completion.request_id,
        block_finished,
    )


def convert_to_api_choice(
    completion_text: str,
    json_data: APIJsonData,
    choice_index: int,
    request_id: RequestId,
    block_finished: bool,
) -> APIChoice:
    """
    Build the APIChoice for one choice.

    `completion_text` may be a prefix of json_data.text, so it is passed in
    separately.
    """
    logger.debug(
        "Engine completion: choice %s, request id %s, text %r",
        choice_index,
        request_id.header_request_id,
        completion_text,
    )
    return APIChoice(
        completion_text=completion_text,
        mean_log_prob=calculate_mean_log_prob(json_data),
        mean_alternative_log_prob=calculate_mean_alternative_log_prob(json_data),
        choice_index=choice_index,
        request_id=request_id,
        block_finished=block_finished,
        tokens=list(json_data.tokens),
        num_tokens=len(json_data.tokens),
        copilot_annotations=json_data.copilot_annotations,
        client_completion_id=str(uuid.uuid4()),
        finish_reason=json_data.finish_reason,
        tool_calls=list(json_data.tool_calls),
    )


def calculate_mean_log_prob(json_data: APIJsonData) -> Optional[float]:
    """
    Mean token logprob over the first tokens, excluding the last one.

    The last token can have several options when it hit a stop sequence.
    Missing logprobs count as 0.
    """
    if json_data.logprobs is None or not json_data.logprobs.token_logprobs:
        return None

    token_logprobs = json_data.logprobs.token_logprobs[:-1][:MEAN_LOGPROB_TOKEN_LIMIT]
    if not token_logprobs:
        return None
    return sum(value or 0.0 for value in token_logprobs) / len(token_logprobs)


def calculate_mean_alternative_log_prob(json_data: APIJsonData) -> Optional[float]:
    """
    Mean logprob of the best alternative to each chosen token.

    Positions whose top logprobs hold no alternative are skipped.
    """
    logprobs = json_data.logprobs
    if logprobs is None or not logprobs.top_logprobs:
        return None

    total = 0.0
    count = 0
    limit = min(len(logprobs.token_logprobs) - 1, MEAN_LOGPROB_TOKEN_LIMIT)
    for position in range(max(limit, 0)):
        if position >= len(logprobs.top_logprobs):
            break
        options = dict(logprobs.top_logprobs[position] or {})
        if position < len(logprobs.tokens):
            options.pop(logprobs.tokens[position], None)
        if not options:
            continue
        total += max(options.values())
        count += 1

    if count == 0:
        return None
    return total / count
