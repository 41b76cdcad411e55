"""
Similar photo detection.

Photos are first bucketed cheaply (same job, or same category within a day),
then every pair inside a bucket is compared by the vision model. Pairs scoring
70+ are linked; each linked cluster keeps its best-quality photo.
"""

import base64
import logging
from collections import defaultdict
from datetime import timedelta
from typing import Awaitable, Callable, Optional

from openai import AsyncOpenAI

from ..config import OPENAI_VISION_MODEL
from .openai_client import create_async_openai_client, parse_json_content

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 70
UNGROUPED_WINDOW = timedelta(hours=24)
RECOMMENDATIONS = ("keep_first", "keep_second", "keep_both")

COMPARISON_PROMPT = """You are analyzing two plumbing job photos to determine if they are duplicates or very similar photos from the same location/job.

Photo 1 Description: {first}
Photo 2 Description: {second}

Compare these photos and provide:

1. SIMILARITY SCORE (0-100):
   - 90-100: Exact duplicates or nearly identical (same angle, same subject, minimal differences)
   - 70-89: Very similar (same location/job, slightly different angle or lighting)
   - 50-69: Somewhat similar (same job but different areas or significant time gap)
   - 0-49: Different photos (different subjects, locations, or jobs)

2. REASON: Explain what makes them similar or different

3. RECOMMENDATION:
   - If similarity >= 70: Recommend keeping the better quality/more informative photo
   - If similarity < 70: Recommend keeping both

Respond in JSON format:
{{
  "similarityScore": 0-100,
  "reason": "detailed explanation",
  "recommended": "keep_first" | "keep_second" | "keep_both"
}}"""


def _data_url(image_bytes: bytes) -> str:
    return f"data:image/jpeg;base64,{base64.b64encode(image_bytes).decode()}"


async def compare_photos(
    first: bytes,
    second: bytes,
    first_description: Optional[str] = None,
    second_description: Optional[str] = None,
    client: Optional[AsyncOpenAI] = None,
) -> dict:
    client = client or create_async_openai_client()
    prompt = COMPARISON_PROMPT.format(
        first=first_description or "No description",
        second=second_description or "No description",
    )
    response = await client.chat.completions.create(
        model=OPENAI_VISION_MODEL,
        messages=[
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": _data_url(first), "detail": "low"}},
                    {"type": "image_url", "image_url": {"url": _data_url(second), "detail": "low"}},
                ],
            }
        ],
        response_format={"type": "json_object"},
        max_tokens=300,
    )
    result = parse_json_content(response.choices[0].message.content or "{}")
    recommended = result.get("recommended")
    return {
        "similarityScore": result.get("similarityScore") or 0,
        "reason": result.get("reason") or "Unknown",
        "recommended": recommended if recommended in RECOMMENDATIONS else "keep_both",
    }


def _photo_time(photo):
    return photo.uploaded_at or photo.fetched_at


def group_photos_by_potential_similarity(photos: list) -> list[list]:
    """Candidate buckets worth comparing pairwise; singletons are dropped"""
    by_job: dict[str, list] = defaultdict(list)
    ungrouped = []
    for photo in photos:
        if photo.job_id:
            by_job[photo.job_id].append(photo)
        else:
            ungrouped.append(photo)

    groups = [group for group in by_job.values() if len(group) > 1]

    # Greedy: each unassigned photo seeds a bucket of same-category photos within a day
    assigned: set[str] = set()
    for seed in ungrouped:
        if seed.id in assigned:
            continue
        seed_time = _photo_time(seed)
        bucket = [seed]
        for other in ungrouped:
            if other.id == seed.id or other.id in assigned or other.category != seed.category:
                continue
            other_time = _photo_time(other)
            if seed_time and other_time and abs(other_time - seed_time) <= UNGROUPED_WINDOW:
                bucket.append(other)
        if len(bucket) > 1:
            assigned.update(photo.id for photo in bucket)
            groups.append(bucket)

    return groups


def _components(edges: dict[str, set[str]]) -> list[list[str]]:
    seen: set[str] = set()
    components = []
    for start in edges:
        if start in seen:
            continue
        stack, component = [start], []
        seen.add(start)
        while stack:
            node = stack.pop()
            component.append(node)
            for neighbor in edges[node]:
                if neighbor not in seen:
                    seen.add(neighbor)
                    stack.append(neighbor)
        components.append(component)
    return components


async def find_similar_photos(
    photos: list,
    download: Callable[[object], Awaitable[bytes]],
    client: Optional[AsyncOpenAI] = None,
) -> list[dict]:
    """
    Find clusters of near-duplicate photos.

    Args:
        photos: Photo rows (id, job_id, category, quality_score, ai_description, timestamps)
        download: Coroutine returning the bytes for a photo
        client: Optional AsyncOpenAI client

    Returns:
        ``[{photoIds, keepPhotoId, deletePhotoIds, similarityScore, reason}]``
    """
    groups = group_photos_by_potential_similarity(photos)
    if not groups:
        return []

    client = client or create_async_openai_client()
    by_id = {photo.id: photo for photo in photos}
    edges: dict[str, set[str]] = defaultdict(set)
    best_score: dict[frozenset, tuple[int, str]] = {}

    for group in groups:
        logger.info(f"📸 Comparing {len(group)} photos in candidate group")
        images: dict[str, bytes] = {}
        for i, first in enumerate(group):
            for second in group[i + 1 :]:
                try:
                    for photo in (first, second):
                        if photo.id not in images:
                            images[photo.id] = await download(photo)
                    comparison = await compare_photos(
                        images[first.id],
                        images[second.id],
                        first.ai_description,
                        second.ai_description,
                        client=client,
                    )
                except Exception as e:
                    logger.error(f"❌ Error comparing photos {first.id} and {second.id}: {e}")
                    continue

                if comparison["similarityScore"] >= SIMILARITY_THRESHOLD:
                    edges[first.id].add(second.id)
                    edges[second.id].add(first.id)
                    best_score[frozenset((first.id, second.id))] = (
                        comparison["similarityScore"],
                        comparison["reason"],
                    )

    results = []
    for component in _components(edges):
        members = [by_id[photo_id] for photo_id in component]
        # max() keeps the first on ties
        keep = max(members, key=lambda photo: photo.quality_score or 0)
        scores = [value for pair, value in best_score.items() if pair <= set(component)]
        top_score, reason = max(scores, key=lambda value: value[0])
        results.append(
            {
                "photoIds": component,
                "keepPhotoId": keep.id,
                "deletePhotoIds": [photo_id for photo_id in component if photo_id != keep.id],
                "similarityScore": top_score,
                "reason": reason,
            }
        )
        logger.info(
            f"✅ Similar group of {len(component)} photos, keeping {keep.id} "
            f"(score {keep.quality_score})"
        )
    return results
