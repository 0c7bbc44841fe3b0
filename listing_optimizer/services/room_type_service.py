"""Room-type resolution and the per-image output naming that depends on it."""
import logging

from listing_optimizer.models.room_type import RoomType

logger = logging.getLogger(__name__)


def resolve_room_type(scraped_label=None, detected_label=None):
    """Pick one authoritative room type from two optional signals.

    A listing label that names a known room type wins. Generic listing labels
    ("entire rental unit") are ignored in favour of a specific AI-detected
    type. Anything else resolves to ``other``.

    Returns:
        RoomType
    """
    scraped = RoomType.parse(scraped_label)
    if scraped is not None:
        resolved = scraped
    else:
        detected = RoomType.parse(detected_label)
        resolved = detected if detected is not None else RoomType.OTHER

    logger.debug(
        "Room type resolved: scraped=%r detected=%r -> %s",
        scraped_label,
        detected_label,
        resolved.value,
    )
    return resolved


def build_file_name(room_type, index):
    """Output file name for the image at zero-based ``index``."""
    return f"{RoomType(room_type).value}_{index + 1}.jpg"


def apply_batch_consistency(analysis, is_style_reference):
    """Tag an analysis so every image in a job is enhanced in the same style."""
    analysis = dict(analysis)
    analysis["batch_consistency"] = {
        "needs_consistency_filter": True,
        "style_reference": "first_image" if is_style_reference else "none",
        "consistency_notes": (
            "Maintain same lighting style, color temperature, and enhancement "
            "level across batch"
        ),
    }
    return analysis


def generate_optimization_comment(room_type, analysis):
    """Summarize the enhancements implied by an image analysis."""
    room_type = RoomType(room_type)
    analysis = analysis or {}
    lighting = analysis.get("lighting") or {}
    composition = analysis.get("composition") or {}
    technical = analysis.get("technical_quality") or {}
    staging = analysis.get("clutter_and_staging") or {}

    lighting_issues = lighting.get("issues") or []
    distracting = staging.get("distracting_objects") or []
    styling = staging.get("styling_needs") or []
    tilted = {"slightly_tilted", "significantly_tilted"}

    enhancements = []
    if lighting.get("quality") == "poor" or lighting.get("brightness") == "too_dark":
        enhancements.append("Improved lighting and brightness")
    if "harsh_shadows" in lighting_issues:
        enhancements.append("Reduced harsh shadows")
    if "color_cast" in lighting_issues or "yellow_tint" in lighting_issues:
        enhancements.append("Corrected color temperature")
    if composition.get("vertical_lines") in tilted:
        enhancements.append("Straightened architectural lines")
    if composition.get("horizontal_lines") in tilted:
        enhancements.append("Aligned horizontal elements")
    if composition.get("angle") in ("too_low", "too_high"):
        enhancements.append("Improved framing and perspective")
    if technical.get("sharpness") == "poor" or technical.get("focus") == "blurry":
        enhancements.append("Enhanced image sharpness")
    if staging.get("people_present"):
        enhancements.append("Removed people from image")
    if staging.get("clutter_level") in ("high", "moderate"):
        if "cords" in distracting:
            enhancements.append("Cleaned up visible cables and cords")
        if "personal_items" in distracting:
            enhancements.append("Removed personal belongings")
        if "random_counters" in distracting:
            enhancements.append("Cleaned up clutter and distractions")

    if room_type == RoomType.BEDROOM:
        if "straighten_pillows" in styling:
            enhancements.append("Straightened and fluffed pillows")
        if "smooth_bed_sheets" in styling:
            enhancements.append("Smoothed bed sheets")
    elif room_type == RoomType.BATHROOM:
        if "fold_towels" in styling:
            enhancements.append("Folded and organized towels")
        if "toiletries" in distracting:
            enhancements.append("Removed toiletries and personal items")
    elif room_type == RoomType.LIVING_ROOM:
        if "align_chairs" in styling:
            enhancements.append("Aligned chairs and furniture")
        if "align_cushions" in styling:
            enhancements.append("Straightened cushions")
    elif room_type == RoomType.KITCHEN:
        if "random_counters" in distracting:
            enhancements.append("Cleared countertops")

    if not enhancements:
        return f"• Applied professional {room_type.value} enhancement"
    return "\n".join(f"• {line}" for line in enhancements)
