"""
Branch Locator

Simulated branch and ATM locations for the user's bank around a point,
sorted by great-circle distance.
"""

import math
import random
import re
import time
from typing import Dict, List, Optional, Any

from .errors import ValidationError


EARTH_RADIUS_KM = 6371.0
MAX_RESULTS = 15
LOCATION_TYPES = ('all', 'branch', 'atm')

BRANCH_KINDS = [
    ("Main Branch", "branch"),
    ("Downtown Branch", "branch"),
    ("City Center", "branch"),
    ("Mall Branch", "branch"),
    ("ATM", "atm"),
    ("Express ATM", "atm"),
    ("Drive-thru ATM", "atm"),
]

AREA_NAMES = ['Downtown', 'City Center', 'Mall Road', 'Main Street', 'Park Avenue', 'Business District']
STREET_NAMES = ['Main St', 'Broadway', 'Park Ave', 'Oak St', 'Pine St', 'Maple Ave', 'Cedar St', 'Elm St']

BRANCH_SERVICES = [
    'Full Banking Services', 'Personal Loans', 'Home Loans', 'Car Loans',
    'Investment Services', 'Safe Deposit Boxes', 'Business Banking', 'Notary Services',
    'Wealth Management', 'International Banking', 'Currency Exchange', 'Financial Planning',
    'Insurance Services', 'Credit Cards', 'Online Banking Support', 'Mobile Banking'
]

ATM_SERVICES = [
    'Cash Withdrawal', 'Cash Deposit', 'Balance Inquiry', 'Mini Statement',
    'Check Deposit', 'Mobile Check Deposit', 'PIN Change', 'Account Transfer'
]

BRANCH_HOURS = "Mon-Fri: 9AM-6PM, Sat: 9AM-2PM, Sun: Closed"
ATM_HOURS = "24/7"


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometres"""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _parse_float(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class BranchLocator:

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def locate(self, lat: Any, lng: Any, radius: Any = 25, location_type: str = 'all',
               bank_name: str = 'BankPro') -> Dict[str, Any]:
        if lat in (None, "") or lng in (None, ""):
            raise ValidationError("Latitude and longitude are required",
                                  details={"message": "Please provide lat and lng query parameters"})

        user_lat = _parse_float(lat)
        user_lng = _parse_float(lng)
        if (user_lat is None or user_lng is None
                or not -90 <= user_lat <= 90 or not -180 <= user_lng <= 180):
            raise ValidationError(
                "Invalid coordinates",
                details={"message": "Latitude must be between -90 and 90, longitude between -180 and 180"})

        search_radius = _parse_float(radius)
        if search_radius is None or search_radius <= 0:
            raise ValidationError("Radius must be a positive number")
        if location_type not in LOCATION_TYPES:
            raise ValidationError("Type must be one of all, branch, atm")

        bank_name = bank_name or 'BankPro'
        branches = self._generate(user_lat, user_lng, search_radius, location_type, bank_name)

        if branches:
            message = f"Found {len(branches)} {bank_name} location(s) within {search_radius:g}km"
        else:
            message = f"No {bank_name} branches or ATMs found in the specified area"
        return {
            "location": {"lat": user_lat, "lng": user_lng, "radius": search_radius},
            "bank": bank_name,
            "branches": branches,
            "count": len(branches),
            "message": message,
        }

    def _generate(self, lat: float, lng: float, radius: float, location_type: str,
                  bank_name: str) -> List[Dict[str, Any]]:
        rng = self.rng
        slug = re.sub(r'\s+', '_', bank_name.lower())
        stamp = int(time.time() * 1000)
        branches = []

        for index in range(rng.randint(5, 12)):
            suffix, kind = rng.choice(BRANCH_KINDS)
            if location_type != 'all' and kind != location_type:
                continue

            angle = rng.random() * 2 * math.pi
            distance = rng.random() * radius
            delta_lat = distance / 111
            delta_lng = distance / (111 * max(math.cos(math.radians(lat)), 0.01))
            branch_lat = lat + delta_lat * math.cos(angle)
            branch_lng = lng + delta_lng * math.sin(angle)

            is_branch = kind == 'branch'
            branches.append({
                "id": f"{slug}_{index + 1}_{stamp}",
                "name": f"{bank_name} {suffix}",
                "type": kind,
                "coordinates": {"lat": branch_lat, "lng": branch_lng},
                "address": (f"{rng.randint(1, 9999)} {rng.choice(STREET_NAMES)}, "
                            f"{rng.choice(AREA_NAMES)}, Local City {rng.randint(10000, 99999)}"),
                "phone": self._phone_number() if is_branch else None,
                "hours": BRANCH_HOURS if is_branch else ATM_HOURS,
                "services": self._services(kind),
                "distance": round(haversine_km(lat, lng, branch_lat, branch_lng), 2),
            })

        branches.sort(key=lambda b: b["distance"])
        return branches[:MAX_RESULTS]

    def _phone_number(self) -> str:
        rng = self.rng
        return f"({rng.randint(200, 999)}) {rng.randint(200, 999)}-{rng.randint(1000, 9999)}"

    def _services(self, kind: str) -> List[str]:
        if kind == 'branch':
            return self.rng.sample(BRANCH_SERVICES, self.rng.randint(5, 10))
        return ATM_SERVICES[:self.rng.randint(4, 6)]
