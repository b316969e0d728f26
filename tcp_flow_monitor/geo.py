"""IP geolocation lookup against ip-api.com."""

import json
import logging
from dataclasses import dataclass, asdict, fields
from typing import Any, Dict
from urllib import error, request

from .errors import GeoLookupError

log = logging.getLogger(__name__)

GEO_URL = "http://demo.ip-api.com/json/{ip}?fields=66846719"

# ip-api uses camelCase; "as" is a Python keyword
_RENAMES = {
    "continentCode": "continent_code",
    "countryCode": "country_code",
    "regionName": "region_name",
    "as": "as_field",
}


@dataclass
class IpInfo:
    """Geolocation record for one address."""
    status: str = ""
    continent: str = ""
    continent_code: str = ""
    country: str = ""
    country_code: str = ""
    region: str = ""
    region_name: str = ""
    city: str = ""
    district: str = ""
    zip: str = ""
    lat: float = 0.0
    lon: float = 0.0
    timezone: str = ""
    offset: int = 0
    currency: str = ""
    isp: str = ""
    org: str = ""
    as_field: str = ""
    asname: str = ""
    reverse: str = ""
    mobile: bool = False
    proxy: bool = False
    hosting: bool = False
    query: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "IpInfo":
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for name, value in data.items():
            name = _RENAMES.get(name, name)
            if name in known and value is not None:
                kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def lookup_ip(ip: str, timeout: float = 3.0) -> IpInfo:
    """Look up geolocation for an IP address."""
    url = GEO_URL.format(ip=ip)
    log.debug("Geo lookup %s", url)
    try:
        req = request.Request(url, headers={"Accept": "application/json"})
        with request.urlopen(req, timeout=timeout) as resp:
            data = json.loads(resp.read().decode("utf-8"))
    except (error.URLError, OSError, ValueError) as e:
        raise GeoLookupError(f"geo lookup for {ip} failed: {e}") from e

    if not isinstance(data, dict):
        raise GeoLookupError(f"geo lookup for {ip} returned unexpected payload")
    if data.get("status") == "fail":
        raise GeoLookupError(f"geo lookup for {ip} failed: {data.get('message', 'unknown error')}")
    return IpInfo.from_api(data)
