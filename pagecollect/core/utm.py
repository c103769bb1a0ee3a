"""Campaign (UTM) and ad click-id extraction from query parameters"""
from typing import Dict, Mapping


KNOWN_CLICK_IDS = ("gclid", "fbclid", "dclid")

_click_id_set = frozenset(KNOWN_CLICK_IDS)


def is_utm_code(name: str) -> bool:
    """Known utm_* names plus any other utm_<something>"""
    name = name.lower()
    return name.startswith("utm_") and len(name) > len("utm_")


def is_click_id(name: str) -> bool:
    return name.lower() in _click_id_set


def get_utms(query: Mapping[str, str]) -> Dict[str, str]:
    return {name.lower(): value for name, value in query.items() if is_utm_code(name)}


def get_click_ids(query: Mapping[str, str]) -> Dict[str, str]:
    return {name.lower(): value for name, value in query.items() if is_click_id(name)}


def to_segment_campaign(utms: Mapping[str, str]) -> Dict[str, str]:
    """utm_source -> source, utm_campaign -> name (Segment context.campaign)"""
    campaign = {}
    for name, value in utms.items():
        key = name[len("utm_"):] if name.startswith("utm_") else name
        campaign["name" if key == "campaign" else key] = value
    return campaign
