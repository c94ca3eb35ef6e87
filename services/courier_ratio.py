from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from api.fraud_check import FraudCheckClient
from utils.errors import FraudCheckError, ValidationError
from utils.logger import get_logger

log = get_logger("[CourierRatio]")

COURIER_KEYS = ("pathao", "steadfast", "redx", "paperfly", "parceldex", "summary")
COUNTER_FIELDS = ("total_parcel", "success_parcel", "cancelled_parcel", "success_ratio")


@dataclass
class CourierStats:
    name: str
    total_parcel: float = 0
    success_parcel: float = 0
    cancelled_parcel: float = 0
    success_ratio: float = 0


@dataclass
class CourierRatio:
    couriers: Dict[str, CourierStats] = field(default_factory=dict)
    checked_phones: List[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.checked_phones


def _add(stats: CourierStats, data: dict) -> None:
    for name in COUNTER_FIELDS:
        setattr(stats, name, getattr(stats, name) + (data.get(name) or 0))


async def aggregate_courier_ratio(client: FraudCheckClient, phones: Iterable[str]) -> CourierRatio:
    """
    Sums per-courier parcel counters over several phone numbers.
    Lookups run one after another; phones without courier data are skipped.
    `success_ratio` is summed as the API returns it, not averaged.
    """
    phones = [p for p in phones if p]
    if not phones:
        raise ValidationError({"phones": "No phone numbers found."})

    result = CourierRatio()
    for phone in phones:
        try:
            data = await client.check_phone(phone)
        except FraudCheckError as e:
            log.warning(f"Courier ratio lookup for {phone} failed: {e}")
            continue

        courier_data = data.get("courierData")
        if not courier_data:
            continue

        for key in COURIER_KEYS:
            item = courier_data.get(key) or {}
            if key not in result.couriers:
                result.couriers[key] = CourierStats(name=item.get("name") or key)
            if item:
                _add(result.couriers[key], item)
        result.checked_phones.append(phone)

    log.info(f"Courier ratio: {len(result.checked_phones)} of {len(phones)} phones had data.")
    return result
