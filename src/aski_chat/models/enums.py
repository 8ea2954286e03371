from enum import Enum


class ChatType(str, Enum):
    direct = "direct"
    group = "group"


class MessageType(str, Enum):
    text = "text"
    file = "file"
    image = "image"
    offer = "offer"
