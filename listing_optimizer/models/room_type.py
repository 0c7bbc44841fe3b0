from enum import Enum


class RoomType(str, Enum):
    BEDROOM = "bedroom"
    KITCHEN = "kitchen"
    BATHROOM = "bathroom"
    LIVING_ROOM = "living_room"
    EXTERIOR = "exterior"
    OTHER = "other"

    @property
    def label(self):
        return ROOM_TYPE_LABELS[self]

    @classmethod
    def parse(cls, value):
        """Map a free-form label onto a RoomType, or None if unrecognized."""
        if not value or not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


ROOM_TYPE_LABELS = {
    RoomType.BEDROOM: "Bedroom",
    RoomType.KITCHEN: "Kitchen",
    RoomType.BATHROOM: "Bathroom",
    RoomType.LIVING_ROOM: "Living Room",
    RoomType.EXTERIOR: "Exterior",
    RoomType.OTHER: "Other",
}
