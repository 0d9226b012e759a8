"""
Candidate aggregation and composite scoring.

Pure functions: no I/O, no shared state. Given what each channel returned
and the materialized records, produce the ranked, thresholded, bounded
result list.

Composite score per memory:

    sum of weights for the signals present (vector, exact, fulltext, tag)
  + name bonus         0.2 if the name equals the query, 0.1 if it contains it
  + observation bonus  0.05 per observation containing the query, at most 0.15
  clamped to [0, 1]
"""

from ..models.memory import MemoryRecord, RankedResult
from ..models.search import ChannelOutputs, ScoreWeights, SearchCandidate

NAME_EQUALS_BONUS = 0.2
NAME_CONTAINS_BONUS = 0.1
OBSERVATION_BONUS = 0.05
OBSERVATION_BONUS_CAP = 0.15


def merge_candidates(outputs: ChannelOutputs) -> dict[str, SearchCandidate]:
    """Fold channel outputs into one candidate per memory id."""
    candidates: dict[str, SearchCandidate] = {}

    def get(memory_id: str) -> SearchCandidate:
        if memory_id not in candidates:
            candidates[memory_id] = SearchCandidate(memory_id=memory_id)
        return candidates[memory_id]

    for hit in outputs.vector:
        candidate = get(hit.memory_id)
        candidate.vector = True
        candidate.vector_similarity = max(candidate.vector_similarity, hit.similarity)
    for memory_id in outputs.exact.exact_ids:
        get(memory_id).exact = True
    for memory_id in outputs.exact.fulltext_ids:
        get(memory_id).fulltext = True
    for hit in outputs.tags.hits:
        candidate = get(hit.memory_id)
        candidate.tag = True
        candidate.tag_semantic = outputs.tags.semantic
    return candidates


def name_bonus(name: str, query: str) -> float:
    name = name.lower()
    query = query.lower()
    if not query:
        return 0.0
    if name == query:
        return NAME_EQUALS_BONUS
    if query in name:
        return NAME_CONTAINS_BONUS
    return 0.0


def observation_bonus(record: MemoryRecord, query: str) -> float:
    query = query.lower()
    if not query:
        return 0.0
    matching = sum(1 for obs in record.observations if query in obs.content.lower())
    return min(matching * OBSERVATION_BONUS, OBSERVATION_BONUS_CAP)


def composite_score(candidate: SearchCandidate, record: MemoryRecord, query: str, weights: ScoreWeights) -> float:
    score = 0.0
    if candidate.vector:
        score += weights.vector
    if candidate.exact:
        score += weights.metadata_exact
    if candidate.fulltext:
        score += weights.metadata_fulltext
    if candidate.tag:
        score += weights.tags
    score += name_bonus(record.name, query)
    score += observation_bonus(record, query)
    return max(0.0, min(score, 1.0))


def aggregate(
    outputs: ChannelOutputs,
    records: dict[str, MemoryRecord],
    query: str,
    weights: ScoreWeights,
    threshold: float,
    limit: int,
) -> list[RankedResult]:
    """
    Score, filter and rank candidates.

    Args:
        outputs: Channel contributions
        records: Materialized memories by id; candidates without a record are dropped
        query: Normalized query, used for the name and observation bonuses
        weights: Channel weights
        threshold: Minimum composite score (inclusive)
        limit: Maximum results

    Returns:
        Results ordered by score descending, then id ascending
    """
    scored: list[tuple[SearchCandidate, MemoryRecord]] = []
    for memory_id, candidate in merge_candidates(outputs).items():
        record = records.get(memory_id)
        if record is None:
            continue
        candidate.score = composite_score(candidate, record, query, weights)
        if candidate.score >= threshold:
            scored.append((candidate, record))

    scored.sort(key=lambda pair: (-pair[0].score, pair[0].memory_id))

    return [
        RankedResult(
            **record.model_dump(),
            score=candidate.score,
            match_type=candidate.match_type,
        )
        for candidate, record in scored[:limit]
    ]
