from enum import Enum
from typing import List, Optional, Tuple
from dataclasses import dataclass, field


@dataclass(frozen=True)
class MappingRule:
    source: str # Substring matched against a source filename, e.g., "_rough".
    dest: str # Destination base name; the output file is <dest>.png.
    size: int # Edge length of the square output texture.
    channel: Optional[int] = None # Output channel index (R=0, G=1, B=2); None replaces the whole image.


@dataclass
class Configuration:
    source_path: str # Root folder holding one subfolder per material.
    dest_path: str # Root folder receiving generated textures, mirroring the material subfolders.
    mapping: List[MappingRule] = field(default_factory=list) # Ordered rules; the first rule matching a filename wins.
    stability_threshold: float = 1.0 # Seconds a file must stay unchanged before an add/change is reported.
    poll_interval: float = 0.1 # Seconds between stat checks while waiting for a file to settle.
    show_details: bool = False # Adds timing info to logs.


DestinationKey = Tuple[str, str] # (material folder, destination base name), identifies one output texture.


class EventKind(Enum):
    ADDED = "add"
    CHANGED = "change"
    REMOVED = "unlink"


@dataclass(frozen=True)
class FileEvent:
    kind: EventKind
    path: str # Absolute path of the source file the event refers to.
