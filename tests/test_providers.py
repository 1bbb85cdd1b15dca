"""Tests for the HTTP weather providers and Mapbox directions, against httpx.MockTransport."""
import asyncio
from datetime import timedelta

import httpx
import pytest

from travelwindow.schemas.route import Location
from travelwindow.services.accuweather import AccuWeatherMinuteCastProvider
from travelwindow.services.directions import DirectionsError, get_route_geometry
from travelwindow.services.openweather import OpenWeatherProvider
from travelwindow.services.tomorrow import TomorrowIoProvider
from travelwindow.services.weather import ProviderPolicy, WeatherProviderError

from conftest import T0, FakeProvider, constant


def _transport(payload=None, status=200, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json=payload)
    return httpx.MockTransport(handler)


def _fetch(provider):
    return asyncio.run(provider.fetch_forecast(-36.8485, 174.7633, T0, T0 + timedelta(hours=2)))


# ---- OpenWeather ----

def _openweather_payload():
    base = int(T0.timestamp())
    return {
        "list": [
            {
                "dt": base,
                "main": {"temp": 15.2},
                "weather": [{"main": "Rain", "description": "light rain"}],
                "wind": {"speed": 5.0},
                "rain": {"3h": 1.5},
            },
            {
                "dt": base + 3 * 3600,
                "main": {"temp": 13.0},
                "weather": [{"main": "Clouds", "description": "overcast clouds"}],
                "wind": {"speed": 2.0},
            },
        ]
    }


def test_openweather_parses_and_densifies():
    seen = []
    provider = OpenWeatherProvider("ow-key", transport=_transport(_openweather_payload(), seen=seen))

    series = _fetch(provider)

    assert seen[0].url.params["appid"] == "ow-key"
    assert seen[0].url.params["units"] == "metric"
    assert series.provider == "openweather"
    assert len(series) == 24
    first = series[0]
    assert first.timestamp == T0
    assert first.precipitation_intensity == pytest.approx(0.5)  # 1.5mm over 3h
    assert first.wind_speed == pytest.approx(18.0)  # 5 m/s
    assert series[1].timestamp - first.timestamp == timedelta(minutes=15)


def test_openweather_http_error():
    provider = OpenWeatherProvider("bad", transport=_transport({"cod": 401}, status=401))

    with pytest.raises(WeatherProviderError, match="HTTP 401"):
        _fetch(provider)


def test_openweather_missing_list():
    provider = OpenWeatherProvider("k", transport=_transport({"cod": "200"}))

    with pytest.raises(WeatherProviderError, match="list"):
        _fetch(provider)


@pytest.mark.parametrize("item", [None, "rain", {"dt": 0, "main": None}, {"dt": 0, "main": {}, "rain": [1.5]}])
def test_openweather_malformed_item(item):
    provider = OpenWeatherProvider("k", transport=_transport({"list": [item]}))

    with pytest.raises(WeatherProviderError, match="failed to parse"):
        _fetch(provider)


def test_openweather_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider = OpenWeatherProvider("k", transport=httpx.MockTransport(handler))

    with pytest.raises(WeatherProviderError, match="network error"):
        _fetch(provider)


# ---- Tomorrow.io ----

def _tomorrow_payload(timestep, minutes):
    step = timedelta(minutes=1) if timestep == "1m" else timedelta(hours=1)
    return {
        "data": {
            "timelines": [
                {
                    "timestep": timestep,
                    "intervals": [
                        {
                            "startTime": (T0 + i * step).isoformat().replace("+00:00", "Z"),
                            "values": {
                                "precipitationIntensity": 0.8,
                                "windSpeed": 10.0,
                                "temperature": 12.0,
                                "weatherCode": 4001,
                            },
                        }
                        for i in range(minutes)
                    ],
                }
            ]
        }
    }


def test_tomorrow_minutely_is_high_resolution_at_five_minute_step():
    seen = []
    provider = TomorrowIoProvider(
        "tm-key", timestep="1m", transport=_transport(_tomorrow_payload("1m", 10), seen=seen)
    )

    series = _fetch(provider)

    assert provider.high_resolution is True
    assert provider.name == "tomorrow-minutely"
    assert seen[0].url.params["timesteps"] == "1m"
    assert [p.timestamp for p in series] == [T0, T0 + timedelta(minutes=5)]
    assert series[0].precipitation_intensity == 0.8
    assert series[0].wind_speed == pytest.approx(36.0)
    assert series[0].condition == "Rain"
    assert series.tolerance == timedelta(minutes=3)


def test_tomorrow_hourly():
    provider = TomorrowIoProvider("k", transport=_transport(_tomorrow_payload("1h", 3)))

    series = _fetch(provider)

    assert provider.high_resolution is False
    assert series.provider == "tomorrow-hourly"
    assert len(series) == 12


def test_tomorrow_wrong_timeline():
    provider = TomorrowIoProvider("k", timestep="1m", transport=_transport(_tomorrow_payload("1h", 3)))

    with pytest.raises(WeatherProviderError, match="timeline"):
        _fetch(provider)


@pytest.mark.parametrize("payload", [
    {"data": None},
    {"data": {"timelines": ["1h"]}},
    {"data": {"timelines": [{"timestep": "1h", "intervals": [None]}]}},
    {"data": {"timelines": [{"timestep": "1h", "intervals": [{"startTime": "2026-10-19T12:00:00Z", "values": [0.8]}]}]}},
])
def test_tomorrow_malformed_payload(payload):
    provider = TomorrowIoProvider("k", transport=_transport(payload))

    with pytest.raises(WeatherProviderError):
        _fetch(provider)


def test_tomorrow_rejects_unknown_timestep():
    with pytest.raises(ValueError):
        TomorrowIoProvider("k", timestep="1d")


# ---- AccuWeather MinuteCast ----

def _accuweather_transport(seen):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if "geoposition" in request.url.path:
            return httpx.Response(200, json={"Key": "2248480"})
        intervals = [
            {
                "DateTime": (T0 + timedelta(minutes=i)).isoformat(),
                "Precipitation": 3.0 if i < 5 else 0.0,
                "PrecipitationType": "Rain",
            }
            for i in range(10)
        ]
        return httpx.Response(200, json={"Intervals": intervals})
    return httpx.MockTransport(handler)


def test_minutecast_looks_up_location_then_forecast():
    seen = []
    provider = AccuWeatherMinuteCastProvider("aw-key", transport=_accuweather_transport(seen))

    series = _fetch(provider)

    assert len(seen) == 2
    assert seen[1].url.params["locationKey"] == "2248480"
    assert series.provider == "accuweather-minutecast"
    assert series[0].precipitation_intensity == 3.0
    assert series[0].condition == "heavy rain"
    assert series[0].wind_speed == 0.0
    assert series.has_wind is False
    assert series[1].precipitation_intensity == 0.0


def test_minutecast_missing_location_key():
    provider = AccuWeatherMinuteCastProvider("k", transport=_transport([]))

    with pytest.raises(WeatherProviderError, match="location key"):
        _fetch(provider)


def test_minutecast_malformed_interval():
    def handler(request: httpx.Request) -> httpx.Response:
        if "geoposition" in request.url.path:
            return httpx.Response(200, json={"Key": "2248480"})
        return httpx.Response(200, json={"Intervals": ["x", None]})

    provider = AccuWeatherMinuteCastProvider("k", transport=httpx.MockTransport(handler))

    with pytest.raises(WeatherProviderError, match="failed to parse"):
        _fetch(provider)


# ---- ProviderPolicy ----

def test_policy_prefers_high_resolution_for_short_trips():
    hourly = FakeProvider(constant())
    minutely = FakeProvider(constant(), name="fake-minutely", high_resolution=True)
    policy = ProviderPolicy(long_range=hourly, short_range=minutely)

    assert policy.select(timedelta(minutes=90)) == [minutely, hourly]
    assert policy.uses_high_resolution(timedelta(minutes=90))
    assert policy.select(timedelta(hours=2)) == [hourly]
    assert not policy.uses_high_resolution(timedelta(hours=3))


def test_policy_with_nothing_configured():
    policy = ProviderPolicy()

    assert policy.select(timedelta(minutes=30)) == []
    assert not policy.uses_high_resolution(timedelta(minutes=30))


# ---- Mapbox directions ----

def test_route_geometry_from_mapbox():
    seen = []
    payload = {
        "code": "Ok",
        "routes": [
            {
                "distance": 125400.0,
                "duration": 5580.0,
                "geometry": {"type": "LineString", "coordinates": [[174.76, -36.85], [175.0, -37.1], [175.28, -37.79]]},
            }
        ],
    }
    route = asyncio.run(
        get_route_geometry(
            Location(latitude=-36.85, longitude=174.76),
            Location(latitude=-37.79, longitude=175.28),
            token="pk.test",
            transport=_transport(payload, seen=seen),
        )
    )

    assert "174.76,-36.85;175.28,-37.79" in seen[0].url.path
    assert seen[0].url.params["geometries"] == "geojson"
    assert route.coordinates[0] == (174.76, -36.85)
    assert route.duration == 5580.0


def test_mapbox_rejected_token():
    with pytest.raises(DirectionsError, match="401"):
        asyncio.run(
            get_route_geometry(
                Location(latitude=0, longitude=0),
                Location(latitude=1, longitude=1),
                token="bad",
                transport=_transport({"message": "Not Authorized"}, status=401),
            )
        )


def test_mapbox_no_routes():
    with pytest.raises(DirectionsError, match="No routes"):
        asyncio.run(
            get_route_geometry(
                Location(latitude=0, longitude=0),
                Location(latitude=1, longitude=1),
                token="pk.test",
                transport=_transport({"code": "NoRoute", "routes": []}),
            )
        )
