import re
from pathlib import Path
from typing import List

from .schemas import DailyPlan, Flights, JourneySummary


DATE_LINE_RE = re.compile(r"^\d+/\d+\([一二三四五六日]\)")
ATTRACTION_RE = re.compile(
    r"淺草寺|上野|東京鐵塔|築地|銀座|六本木|明治神宮|富士山|秋葉原|竹下通|表參道|南青山|阿美横町"
)
TIME_RE = re.compile(r"\d+:\d+")
TRANSPORT_RE = re.compile(r"搭|走|分鐘|站")
LEADING_TAG_RE = re.compile(r"^\[.*?\]")

HOTEL_MARKERS = ("豪景酒店", "淺草豪景")
HOTEL_NAME = "淺草豪景酒店"
DEPARTURE_MARKER = "班機時間："
RETURN_MARKER = "航班（IT201）"
META_MARKERS = ("交通:", "食:", "購物:")

MIN_ACTIVITY_LINE_LEN = 10
MIN_ACTIVITY_LEN = 5


def load_journey_text(path: Path) -> str:
    return Path(path).read_text(encoding="utf-8")


def _is_activity(line: str) -> bool:
    mentions_plan = bool(ATTRACTION_RE.search(line) or TIME_RE.search(line) or TRANSPORT_RE.search(line))
    is_meta = any(marker in line for marker in META_MARKERS)
    return mentions_plan and not is_meta and len(line) > MIN_ACTIVITY_LINE_LEN


def parse_journey_info(journey_content: str) -> JourneySummary:
    """Build a display summary from the free-form itinerary text.

    Day headers look like ``12/20(五)``; every following line until the next
    header is screened for attractions, clock times or transport hints.
    """
    dates: List[str] = []
    hotel = ""
    departure = ""
    return_flight = ""
    daily_plans: List[DailyPlan] = []

    current_day = ""
    current_activities: List[str] = []

    for raw_line in journey_content.split("\n"):
        line = raw_line.strip()

        if DATE_LINE_RE.match(line):
            if current_day and current_activities:
                daily_plans.append(DailyPlan(day=current_day, activities=list(current_activities)))
            current_day = line
            current_activities = []
            dates.append(line)

        if any(marker in line for marker in HOTEL_MARKERS):
            hotel = HOTEL_NAME

        if DEPARTURE_MARKER in line:
            departure = line
        if RETURN_MARKER in line:
            return_flight = line

        # The header line itself counts too when it describes an activity.
        if current_day and _is_activity(line):
            cleaned = LEADING_TAG_RE.sub("", line, count=1).strip()
            if len(cleaned) > MIN_ACTIVITY_LEN:
                current_activities.append(cleaned)

    if current_day and current_activities:
        daily_plans.append(DailyPlan(day=current_day, activities=list(current_activities)))

    return JourneySummary(
        dates=dates,
        hotel=hotel,
        flights=Flights(departure=departure, return_flight=return_flight),
        dailyPlans=daily_plans,
    )
