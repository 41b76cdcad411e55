"""
Production photo analyzer.

Scores job photos with the vision model: is it fit to show customers, what
category of plumbing work does it show, and where is its focal point (used
for smart cropping on the website).
"""

import base64
import logging
from typing import Optional

from openai import AsyncOpenAI

from ..config import OPENAI_VISION_MODEL
from .openai_client import create_async_openai_client, parse_json_content

logger = logging.getLogger(__name__)

PLUMBING_CATEGORIES = [
    "water-heater",
    "drain-cleaning",
    "leak-repair",
    "pipe-repair",
    "faucet-repair",
    "toilet-repair",
    "gas-line",
    "sewer-line",
    "backflow-prevention",
    "commercial-plumbing",
    "general-plumbing",
]
DEFAULT_CATEGORY = "general-plumbing"

ANALYSIS_PROMPT = f"""You are a professional plumbing marketing expert analyzing job site photos for customer-facing marketing materials (website, blog posts, social media).

ANALYZE THIS PHOTO FOR PRODUCTION QUALITY:

1. PRODUCTION QUALITY CHECK (is this suitable to show customers?):
   Ask yourself "What is this photo ABOUT?"

   ACCEPT if the photo is ABOUT:
   - Plumbing work (installations, repairs, diagnostics, before/after, work in progress)
   - Equipment in context (water heaters, fixtures, pipes, valves)
   - Job site conditions, under-sink work, crawl spaces
   - Even if rating plates, labels or serial numbers are VISIBLE in the photo
   - Even if lighting isn't perfect or the area is cluttered

   REJECT ONLY if the photo's PRIMARY SUBJECT is:
   - A close-up specifically OF a rating plate, serial number or part label
   - An extreme technical detail shot with no broader work context visible
   - So blurry or dark you genuinely cannot tell what it shows

   BE VERY LENIENT. Accept 95%+ of real plumbing work photos.

2. FOCAL POINT DETECTION:
   - Identify the main subject
   - Provide X,Y coordinates as percentages (0-100) from the top-left corner
   - Example: water heater in center = X:50, Y:50

3. CATEGORIZATION:
   Choose the most specific category: {", ".join(PLUMBING_CATEGORIES)}

4. DESCRIPTION & TAGS:
   - Clear description of what's shown
   - Relevant tags for searchability

Respond in this EXACT JSON format:
{{
  "isProductionQuality": true or false,
  "qualityScore": 0-100,
  "qualityReason": "Specific reason why this photo is/isn't production quality",
  "category": "one of the categories above",
  "description": "Clear description of photo",
  "tags": ["tag1", "tag2", "tag3"],
  "focalPointX": 0-100,
  "focalPointY": 0-100,
  "focalPointReason": "Why this focal point"
}}"""


def _clamp(value, default: float) -> float:
    if value is None:
        value = default
    try:
        return min(100, max(0, float(value)))
    except (TypeError, ValueError):
        return default


def normalize_analysis(raw: dict) -> dict:
    category = raw.get("category")
    tags = raw.get("tags")
    return {
        "isProductionQuality": bool(raw.get("isProductionQuality", False)),
        "qualityScore": int(_clamp(raw.get("qualityScore"), 0)),
        "qualityReason": raw.get("qualityReason") or "No reason provided",
        "category": category if category in PLUMBING_CATEGORIES else DEFAULT_CATEGORY,
        "description": raw.get("description") or "Plumbing photo",
        "tags": tags if isinstance(tags, list) else [],
        "focalPointX": _clamp(raw.get("focalPointX"), 50),
        "focalPointY": _clamp(raw.get("focalPointY"), 50),
        "focalPointReason": raw.get("focalPointReason") or "Center of image",
    }


async def analyze_production_photo(
    image_bytes: bytes, filename: Optional[str] = None, client: Optional[AsyncOpenAI] = None
) -> dict:
    """
    Analyze a single photo.

    Args:
        image_bytes: Raw image bytes (sent as a base64 JPEG data URL)
        filename: Only used for logging
        client: Optional AsyncOpenAI client

    Returns:
        Normalized analysis dict

    Raises:
        ValueError: if the model returns no content or invalid JSON
    """
    client = client or create_async_openai_client()
    image_url = f"data:image/jpeg;base64,{base64.b64encode(image_bytes).decode()}"

    response = await client.chat.completions.create(
        model=OPENAI_VISION_MODEL,
        messages=[
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": ANALYSIS_PROMPT},
                    {"type": "image_url", "image_url": {"url": image_url, "detail": "high"}},
                ],
            }
        ],
        max_tokens=1000,
    )

    content = response.choices[0].message.content
    if not content:
        raise ValueError("No response from OpenAI")

    analysis = normalize_analysis(parse_json_content(content))
    logger.info(
        f"📸 Analyzed {filename or 'photo'}: score={analysis['qualityScore']} "
        f"category={analysis['category']} production={analysis['isProductionQuality']}"
    )
    return analysis
