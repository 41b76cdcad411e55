"""
Before/after composer.

Finds before/after pairs among a job's photos with the vision model, renders
a polaroid-style composite with Pillow and writes a social caption for it.
"""

import asyncio
import base64
import io
import logging
import time
from typing import Awaitable, Callable, Optional

from openai import AsyncOpenAI
from PIL import Image, ImageDraw, ImageFont, ImageOps
from sqlalchemy.orm import Session

from ..config import BUSINESS_PHONE, OPENAI_VISION_MODEL, SITE_URL
from ..models_photos import BeforeAfterComposite, Photo
from .openai_client import create_async_openai_client, parse_json_content
from .photo_storage import download_photo, upload_photo

logger = logging.getLogger(__name__)

PAIR_CONFIDENCE_THRESHOLD = 0.7
PAIR_CHECK_DELAY_SECONDS = 0.5

PHOTO_WIDTH = 800
PHOTO_HEIGHT = 600
FRAME_MARGIN = 40
LABEL_HEIGHT = 80
FRAME_WIDTH = PHOTO_WIDTH + FRAME_MARGIN * 2
FRAME_HEIGHT = PHOTO_HEIGHT + FRAME_MARGIN + LABEL_HEIGHT
FRAME_GAP = 60
LABEL_COLOR = "#1E88E5"
CANVAS_COLOR = (240, 240, 240)
WEBP_QUALITY = 85

PAIR_SYSTEM_PROMPT = """You are an expert at analyzing plumbing job photos. Determine if two photos show the same location/fixture in before and after states. Look for:
- Same location (walls, floor, fixtures in same position)
- Same plumbing fixture or problem area
- Evidence of work being done (old vs new equipment, problem resolved)

Respond with JSON:
{
  "isBeforeAfter": boolean,
  "confidence": number (0-1),
  "reasoning": "brief explanation",
  "whichIsBefore": 1 or 2
}"""

CAPTION_SYSTEM_PROMPT = """You are a social media manager for a trusted local plumbing company. Write engaging Facebook/Instagram posts for before/after photos that:
1. Explain what the problem was and what we did to fix it (2-3 sentences)
2. Promote our professional plumbing services
3. Include a call-to-action

Be conversational, helpful, and professional. Total length should be 250-350 characters."""


def contact_block() -> str:
    return f"📞 Call us: {BUSINESS_PHONE}\n🌐 Visit: {SITE_URL}/?utm=facebook"


FALLBACK_CAPTION = "Before and after! Our expert plumbers solved another problem. Quality plumbing you can count on."


def _data_url(image_bytes: bytes) -> str:
    return f"data:image/jpeg;base64,{base64.b64encode(image_bytes).decode()}"


async def detect_before_after_pairs(
    photos: list[Photo],
    download: Callable[[Photo], Awaitable[bytes]],
    client: Optional[AsyncOpenAI] = None,
) -> list[dict]:
    """Returns ``[{before, after, confidence, reasoning}]`` for confident pairs"""
    if len(photos) < 2:
        return []

    client = client or create_async_openai_client()
    logger.info(f"📸 Analyzing {len(photos)} photos for before/after pairs")
    pairs = []
    for i, first in enumerate(photos):
        for second in photos[i + 1 :]:
            if first.category != second.category:
                continue
            try:
                first_bytes = await download(first)
                second_bytes = await download(second)
                response = await client.chat.completions.create(
                    model=OPENAI_VISION_MODEL,
                    messages=[
                        {"role": "system", "content": PAIR_SYSTEM_PROMPT},
                        {
                            "role": "user",
                            "content": [
                                {
                                    "type": "text",
                                    "text": f"Photo 1: {first.ai_description}\nPhoto 2: {second.ai_description}\n\n"
                                    "Are these before/after photos of the same plumbing work?",
                                },
                                {"type": "image_url", "image_url": {"url": _data_url(first_bytes), "detail": "low"}},
                                {"type": "image_url", "image_url": {"url": _data_url(second_bytes), "detail": "low"}},
                            ],
                        },
                    ],
                    response_format={"type": "json_object"},
                    max_tokens=300,
                )
                result = parse_json_content(response.choices[0].message.content or "{}")
                confidence = float(result.get("confidence") or 0)
                if result.get("isBeforeAfter") and confidence > PAIR_CONFIDENCE_THRESHOLD:
                    first_is_before = result.get("whichIsBefore") == 1
                    pairs.append(
                        {
                            "before": first if first_is_before else second,
                            "after": second if first_is_before else first,
                            "confidence": confidence,
                            "reasoning": result.get("reasoning") or "",
                        }
                    )
                    logger.info(f"✅ Found before/after pair ({confidence:.0%}): {result.get('reasoning')}")
            except Exception as e:
                logger.error(f"❌ Error analyzing pair {first.id}/{second.id}: {e}")

            await asyncio.sleep(PAIR_CHECK_DELAY_SECONDS)
    return pairs


async def generate_caption(before: Photo, after: Photo, client: Optional[AsyncOpenAI] = None) -> str:
    try:
        client = client or create_async_openai_client()
        response = await client.chat.completions.create(
            model=OPENAI_VISION_MODEL,
            messages=[
                {"role": "system", "content": CAPTION_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": f"Before: {before.ai_description}\nAfter: {after.ai_description}\n\n"
                    "Write a Facebook/Instagram post for this before/after photo.",
                },
            ],
            max_tokens=250,
        )
        caption = (response.choices[0].message.content or "").strip()
    except Exception as e:
        logger.error(f"❌ Error generating caption: {e}")
        caption = FALLBACK_CAPTION

    if BUSINESS_PHONE not in caption:
        caption = f"{caption}\n\n{contact_block()}"
    return caption


def _label_font():
    try:
        return ImageFont.truetype("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf", 36)
    except OSError:
        return ImageFont.load_default()


def _polaroid(image_bytes: bytes, label: str) -> Image.Image:
    photo = ImageOps.fit(
        Image.open(io.BytesIO(image_bytes)).convert("RGB"), (PHOTO_WIDTH, PHOTO_HEIGHT)
    )
    frame = Image.new("RGBA", (FRAME_WIDTH, FRAME_HEIGHT), (255, 255, 255, 255))
    frame.paste(photo, (FRAME_MARGIN, FRAME_MARGIN))

    draw = ImageDraw.Draw(frame)
    font = _label_font()
    left, top, right, bottom = draw.textbbox((0, 0), label, font=font)
    text_x = (FRAME_WIDTH - (right - left)) / 2
    text_y = PHOTO_HEIGHT + FRAME_MARGIN + (LABEL_HEIGHT - (bottom - top)) / 2
    draw.text((text_x, text_y), label, fill=LABEL_COLOR, font=font)
    return frame


def create_before_after_composite(before_bytes: bytes, after_bytes: bytes) -> bytes:
    """Stack BEFORE and AFTER polaroids, slightly tilted, and encode as WebP"""
    before_frame = _polaroid(before_bytes, "BEFORE").rotate(2, expand=True, resample=Image.BICUBIC)
    after_frame = _polaroid(after_bytes, "AFTER").rotate(-3, expand=True, resample=Image.BICUBIC)

    canvas = Image.new(
        "RGB", (FRAME_WIDTH + 100, FRAME_HEIGHT * 2 + FRAME_GAP + 100), CANVAS_COLOR
    )
    canvas.paste(before_frame, (50, 20), before_frame)
    canvas.paste(after_frame, (30, FRAME_HEIGHT + FRAME_GAP), after_frame)

    output = io.BytesIO()
    canvas.save(output, format="WEBP", quality=WEBP_QUALITY)
    return output.getvalue()


async def _download(photo: Photo) -> bytes:
    return await download_photo(photo.photo_url)


async def process_before_after_pairs(
    db: Session,
    photos: list[Photo],
    job_id: str,
    client: Optional[AsyncOpenAI] = None,
    download=None,
    upload=upload_photo,
) -> list[BeforeAfterComposite]:
    """Detect pairs for one job, render and upload composites, and save them"""
    download = download or _download
    client = client or create_async_openai_client()
    pairs = await detect_before_after_pairs(photos, download, client=client)
    if not pairs:
        logger.info(f"ℹ️ No before/after pairs found in job {job_id}")
        return []

    logger.info(f"📸 Found {len(pairs)} before/after pair(s) in job {job_id}")
    composites = []
    for pair in pairs:
        try:
            image = create_before_after_composite(
                await download(pair["before"]), await download(pair["after"])
            )
            key = f"composites/before_after_{job_id}_{int(time.time() * 1000)}.webp"
            url = upload(image, key, "image/webp")
            caption = await generate_caption(pair["before"], pair["after"], client=client)

            composite = BeforeAfterComposite(
                before_photo_id=pair["before"].id,
                after_photo_id=pair["after"].id,
                composite_url=url,
                storage_key=key,
                caption=caption,
                category=pair["before"].category,
                job_id=job_id,
            )
            db.add(composite)
            db.commit()
            db.refresh(composite)
            composites.append(composite)
            logger.info(f"✅ Created composite {composite.id} for job {job_id}")
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Error creating composite for job {job_id}: {e}")
    return composites
