"""Gemini-backed room classification and image optimization."""
import io
import json
import logging

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from PIL import Image as PILImage

from listing_optimizer.errors import ClassificationError, OptimizationError
from listing_optimizer.models.room_type import RoomType

logger = logging.getLogger(__name__)

DEFAULT_ANALYSIS_MODEL = "gemini-2.5-flash"
DEFAULT_OPTIMIZATION_MODEL = "gemini-2.5-flash-image-preview"

TRANSIENT_ERRORS = (
    google_exceptions.ServerError,
    google_exceptions.TooManyRequests,
    google_exceptions.ResourceExhausted,
    google_exceptions.DeadlineExceeded,
    TimeoutError,
)

REQUIRED_ANALYSIS_FIELDS = (
    "room_type",
    "room_context",
    "lighting",
    "composition",
    "technical_quality",
    "clutter_and_staging",
    "color_and_tone",
    "enhancement_priority",
    "specific_improvements",
)

OBJECT_ANALYSIS_FIELDS = (
    "room_context",
    "lighting",
    "composition",
    "technical_quality",
    "clutter_and_staging",
    "color_and_tone",
)

ANALYSIS_PROMPT = """You are a real estate photography expert. Analyze this \
listing photo and answer with a single JSON object, no prose.

Fields:
- room_type: one of bedroom, kitchen, bathroom, living_room, exterior, other
- room_context: {size: small|medium|large, layout: open|closed|mixed, \
key_features: [], selling_points: []}
- lighting: {quality: excellent|good|poor, type: natural|artificial|mixed, \
brightness: too_dark|good|too_bright, distribution: even|uneven|harsh, \
color_temperature: warm|neutral|cool|mixed, issues: [], needs_enhancement: []}
- composition: {framing: good|needs_adjustment, \
angle: optimal|too_low|too_high|off_center, symmetry: good|needs_correction, \
perspective: wide_angle|normal|telephoto|distorted, \
key_selling_points_visible: bool, \
vertical_lines: straight|slightly_tilted|significantly_tilted, \
horizontal_lines: straight|slightly_tilted|significantly_tilted, \
issues: [], needs_enhancement: []}
- technical_quality: {sharpness: excellent|good|poor, noise_level: low|medium|high, \
exposure: perfect|underexposed|overexposed|mixed, \
color_balance: neutral|warm|cool|color_cast, focus: sharp|slightly_soft|blurry, \
issues: [], needs_enhancement: []}
- clutter_and_staging: {people_present: bool, clutter_level: minimal|moderate|high, \
distracting_objects: [], styling_needs: [], needs_removal: [], \
organization_opportunities: []}
- color_and_tone: {current_tone: neutral|warm|cool|mixed, saturation_level: low|good|high, \
white_balance: good|too_warm|too_cool, \
color_accuracy: accurate|slightly_off|significantly_off, \
mood: inviting|neutral|cold|overwhelming, needs_enhancement: []}
- enhancement_priority: ordered list of the most valuable fixes
- specific_improvements: {lighting_fixes: [], composition_fixes: [], \
styling_fixes: [], technical_fixes: [], color_fixes: []}

Use snake_case tokens inside lists, e.g. harsh_shadows, color_cast, cords, \
personal_items, random_counters, toiletries, straighten_pillows, \
smooth_bed_sheets, fold_towels, align_chairs, align_cushions."""

OPTIMIZATION_PROMPT = """Enhance this {room_label} photo for a short-term rental \
listing as a professional real estate photographer would.

Priorities from the analysis: {priorities}

LIGHTING: balance exposure, lift shadows, neutral white balance, bright and inviting.
COMPOSITION: straighten vertical and horizontal lines, keep a wide-angle real \
estate look.
STAGING: {staging}
{consistency}
MAINTAIN AUTHENTICITY: enhance only. Do not add furniture, fixtures, views or \
any element that is not in the original. Keep the room layout identical."""

ROOM_STAGING = {
    RoomType.BEDROOM: "smooth bed sheets, straighten and fluff pillows, clear nightstands",
    RoomType.KITCHEN: "clear countertops, hide small appliances and dish racks",
    RoomType.BATHROOM: "fold towels neatly, remove toiletries and personal items",
    RoomType.LIVING_ROOM: "align chairs and cushions, tidy coffee tables, hide cables",
    RoomType.EXTERIOR: "tidy outdoor furniture, remove bins and hoses, enrich sky and greenery naturally",
    RoomType.OTHER: "remove clutter and personal items",
}


def configure(api_key):
    genai.configure(api_key=api_key)


def _load_image(image_bytes):
    img = PILImage.open(io.BytesIO(image_bytes))
    if img.mode != "RGB":
        img = img.convert("RGB")
    return img


def _generate(api_key, model_name, parts, timeout, error_cls, generation_config=None):
    """Run one generate_content call, mapping SDK failures onto ``error_cls``."""
    configure(api_key)
    model = genai.GenerativeModel(model_name)
    try:
        return model.generate_content(
            parts,
            generation_config=generation_config,
            request_options={"timeout": timeout},
        )
    except TRANSIENT_ERRORS as e:
        raise error_cls(f"Gemini temporarily unavailable: {e}", transient=True) from e
    except google_exceptions.GoogleAPICallError as e:
        raise error_cls(f"Gemini request rejected: {e}") from e


def parse_analysis(text):
    """Parse a model reply into an analysis dict.

    Tolerates Markdown code fences around the JSON.

    Raises:
        ClassificationError if the reply is not a valid analysis.
    """
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
    try:
        analysis = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ClassificationError(f"Failed to parse analysis response: {e}") from e
    validate_analysis(analysis)
    return analysis


def validate_analysis(analysis):
    if not isinstance(analysis, dict):
        raise ClassificationError("Invalid analysis response: not an object")
    for name in REQUIRED_ANALYSIS_FIELDS:
        if name not in analysis or analysis[name] is None:
            raise ClassificationError(f"Missing required field: {name}")
    if RoomType.parse(analysis["room_type"]) is None:
        raise ClassificationError(f"Invalid room type: {analysis['room_type']}")
    for name in OBJECT_ANALYSIS_FIELDS:
        if not isinstance(analysis[name], dict):
            raise ClassificationError(f"Field {name} must be an object")
    if not isinstance(analysis["enhancement_priority"], list):
        raise ClassificationError("Enhancement priority must be an array")
    analysis["room_type"] = RoomType.parse(analysis["room_type"]).value


def build_optimization_prompt(room_type, analysis):
    room_type = RoomType(room_type)
    analysis = analysis or {}
    priorities = ", ".join(analysis.get("enhancement_priority") or []) or "general enhancement"
    consistency = ""
    reference = (analysis.get("batch_consistency") or {}).get("style_reference")
    if reference == "first_image":
        consistency = "STYLE: this image sets the look for the rest of the listing.\n"
    elif reference == "none":
        consistency = "STYLE: match the lighting, color temperature and enhancement level of the listing's other photos.\n"
    return OPTIMIZATION_PROMPT.format(
        room_label=room_type.label.lower(),
        priorities=priorities,
        staging=ROOM_STAGING[room_type],
        consistency=consistency,
    )


def extract_image(response):
    """Return the first inline image in a Gemini response as JPEG bytes."""
    if not response.candidates:
        raise OptimizationError("Gemini returned no candidates")

    for part in response.candidates[0].content.parts:
        if hasattr(part, "inline_data") and part.inline_data and part.inline_data.data:
            image_bytes = part.inline_data.data
            try:
                img = PILImage.open(io.BytesIO(image_bytes))
                img.verify()
            except Exception as e:
                raise OptimizationError(f"Gemini returned an invalid image: {e}") from e
            # verify() leaves the image unusable; reopen to re-encode
            img = _load_image(image_bytes)
            buffer = io.BytesIO()
            img.save(buffer, format="JPEG", quality=90)
            return buffer.getvalue()

    raise OptimizationError("Gemini response did not contain an image")


class GeminiClassifier:
    def __init__(self, api_key, model=DEFAULT_ANALYSIS_MODEL, timeout=60):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def classify(self, image_bytes):
        """Analyze one photo and return its ImageAnalysis dict."""
        response = _generate(
            self.api_key,
            self.model,
            [ANALYSIS_PROMPT, _load_image(image_bytes)],
            self.timeout,
            ClassificationError,
            generation_config=genai.GenerationConfig(response_mime_type="application/json"),
        )
        try:
            text = response.text
        except ValueError as e:
            # raised when the reply was blocked or carries no text part
            raise ClassificationError(f"Gemini returned no analysis: {e}") from e
        analysis = parse_analysis(text)
        logger.info("Classified image as %s", analysis["room_type"])
        return analysis


class GeminiOptimizer:
    def __init__(self, api_key, model=DEFAULT_OPTIMIZATION_MODEL, timeout=60):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def optimize(self, image_bytes, room_type, analysis=None):
        """Return an enhanced JPEG for one photo."""
        prompt = build_optimization_prompt(room_type, analysis)
        response = _generate(
            self.api_key,
            self.model,
            [prompt, _load_image(image_bytes)],
            self.timeout,
            OptimizationError,
        )
        return extract_image(response)
