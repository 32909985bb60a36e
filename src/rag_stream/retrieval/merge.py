"""Merging of per-query index results into one candidate list."""

from __future__ import annotations

from itertools import chain

from rag_stream.types import Candidate, IndexMatch

UNKNOWN_CHUNK_ID = "unknown"


def merge_matches(per_query: list[list[IndexMatch]]) -> list[Candidate]:
    """Deduplicate matches across queries, keeping the first occurrence.

    Order is driven by query submission order and then by rank inside each
    query, never by comparing scores across queries. When an id appears more
    than once, the first record wins even if a later one scored higher.
    """

    flattened = list(chain.from_iterable(per_query))
    distinct_ids = list(dict.fromkeys(match.id for match in flattened))
    return [_to_candidate(_first_match(flattened, match_id)) for match_id in distinct_ids]


def candidate_ids(candidates: list[Candidate]) -> list[str]:
    return [candidate.id or UNKNOWN_CHUNK_ID for candidate in candidates]


def _first_match(flattened: list[IndexMatch], match_id: str) -> IndexMatch | None:
    return next((match for match in flattened if match.id == match_id), None)


def _to_candidate(match: IndexMatch | None) -> Candidate:
    # An id that cannot be resolved never matches a stored chunk.
    if match is None:
        return Candidate(id=UNKNOWN_CHUNK_ID, score=0.0)
    return Candidate(id=match.id, score=match.score, metadata=dict(match.metadata))
