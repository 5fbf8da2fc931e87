import json
from dataclasses import dataclass, fields
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

# OSM keys inspected on the target route, in processing order
TARGET_KEYS = [
    "highway",
    "maxspeed",
    "name",
    "oneway",
    "surface",
    "lane_markings",
    "lanes",
    "shoulder",
]

# OSM key -> lanelet2 key for tags that are copied without mapping
TRANSFER_KEYS = {
    "maxspeed": "speed_limit",
    "name": "road_name",
    "oneway": "one_way",
    "surface": "road_surface",
    "lane_markings": "lane_markings",
}

# highway tag -> lanelet2 subtype / location
HIGHWAY_NONURBAN = ["motorway", "trunk", "motorway_link", "trunk_link"]
ROAD_URBAN = [
    "primary",
    "secondary",
    "tertiary",
    "unclassified",
    "residential",
    "primary_link",
    "secondary_link",
    "tertiary_link",
    "service",
]

# shoulder values adding one (or two) drivable lanes to the OSM lanes tag
SHOULDER_ONE_SIDE = ["yes", "left", "right"]
SHOULDER_BOTH_SIDES = "both"

# Point attributes written by map-builder tools that are stale after alignment
AUTOGENERATED_POINT_TAGS = ("local_x", "local_y", "mgrs_code")

FORWARD = "forward"
BACKWARD = "backward"
DIRECTIONS = (FORWARD, BACKWARD)

# Path to the default fusion parameters JSON
FUSION_PARAMS_PATH = Path(__file__).parent / "fusion_parameters.json"


@lru_cache()
def load_fusion_params(path: str | Path = FUSION_PARAMS_PATH) -> Dict[str, Any]:
    """Load named fusion parameters (alignment + conflation tolerances)."""
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


@dataclass
class FusionConfig:
    align_method: str = "Umeyama"
    align_num_inter_ume: int = 100
    icp_max_iterations: int = 50
    icp_tolerance: float = 1e-8

    split_tolerance: float = 1e-3  # snap distance onto an existing vertex [m]
    direction_threshold_deg: float = 90.0
    scale_warning_threshold: float = 0.95

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "FusionConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in params.items() if k in known})

    @classmethod
    def default(cls) -> "FusionConfig":
        return cls.from_params(load_fusion_params())
