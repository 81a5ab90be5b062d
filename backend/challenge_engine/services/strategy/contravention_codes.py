"""
PCN Challenge Engine - Contravention Codes

London standard contravention codes with their descriptions.
Codes may carry a single-character suffix on the ticket ("01a", "16s");
lookups are done on the two-digit base code.
"""
import re
from typing import Dict, Optional

CONTRAVENTION_CODES: Dict[str, str] = {
    # On-street (higher level)
    "01": "Parked in a restricted street during prescribed hours",
    "02": "Parked or loading/unloading in a restricted street where waiting and loading/unloading restrictions are in force",
    "12": "Parked in a residents' or shared use parking place or zone without a valid virtual permit or clearly displaying a valid physical permit or voucher or pay and display ticket issued for that place where required, or without payment of the parking charge",
    "14": "Parked in an electric vehicles' charging place during restricted hours without charging",
    "16": "Parked in a permit space or zone without a valid virtual permit or clearly displaying a valid physical permit where required",
    "18": "Using a vehicle in a parking place in connection with the sale or offering or exposing for sale of goods when prohibited",
    "20": "Parked in a part of a parking place marked by a yellow line where waiting is prohibited",
    "21": "Parked wholly or partly in a suspended bay or space",
    "23": "Parked in a parking place or area not designated for that class of vehicle",
    "25": "Parked in a loading place or bay during restricted hours without loading",
    "26": "Parked in a special enforcement area more than 50cm from the edge of the carriageway and not within a designated parking place",
    "27": "Parked in a special enforcement area adjacent to a footway, cycle track or verge lowered to meet the level of the carriageway",
    "28": "Parked in a special enforcement area on part of the carriageway raised to meet the level of a footway, cycle track or verge",
    "40": "Parked in a designated disabled person's parking place without displaying a valid disabled person's badge",
    "41": "Stopped in a parking place designated for diplomatic vehicles",
    "42": "Parked in a parking place designated for police vehicles",
    "43": "Stopped on a cycle docking station parking place",
    "45": "Stopped on a taxi rank",
    "46": "Stopped where prohibited (on a red route or clearway)",
    "47": "Stopped on a restricted bus stop or stand",
    "48": "Stopped in a restricted area outside a school, a hospital or a fire, police or ambulance station when prohibited",
    "49": "Parked wholly or partly on a cycle track or lane",
    "55": "A commercial vehicle parked in a restricted street in contravention of the overnight waiting ban",
    "56": "Parked in contravention of a commercial vehicle waiting restriction",
    "57": "Parked in contravention of a bus ban",
    "61": "A heavy commercial vehicle wholly or partly parked on a footway, verge or land between two carriageways",
    "62": "Parked with one or more wheels on or over a footpath or any part of a road other than a carriageway",
    "99": "Stopped on a pedestrian crossing or crossing area marked by zigzags",

    # Off-street car parks
    "70": "Parked in a loading place or bay during restricted hours without loading",
    "71": "Parked in an electric vehicles' charging place during restricted hours without charging",
    "74": "Using a vehicle in a parking place in connection with the sale or offering or exposing for sale of goods when prohibited",
    "78": "Parked wholly or partly in a suspended bay or space",
    "81": "Parked in a restricted area in an off-street car park or housing estate",
    "85": "Parked without a valid virtual permit or clearly displaying a valid physical permit where required",
    "87": "Parked in a designated disabled person's parking place without displaying a valid disabled person's badge",
    "89": "Vehicle parked exceeds maximum weight or height or length permitted",
    "91": "Parked in a car park or area not designated for that class of vehicle",
    "92": "Parked causing an obstruction",
}

_CODE_PATTERN = re.compile(r"^\s*(\d{1,2})\s*[a-z0-9]?\s*$", re.IGNORECASE)


def base_code(code: Optional[str]) -> Optional[str]:
    """'01a' → '01', '1' → '01'. None for anything that is not code-shaped."""
    if code is None:
        return None
    match = _CODE_PATTERN.match(str(code))
    if not match:
        return None
    return match.group(1).zfill(2)


def is_recognized(code: Optional[str]) -> bool:
    base = base_code(code)
    return base is not None and base in CONTRAVENTION_CODES


def describe(code: Optional[str]) -> Optional[str]:
    """Description for a code, or None when the code is unknown."""
    base = base_code(code)
    if base is None:
        return None
    return CONTRAVENTION_CODES.get(base)
