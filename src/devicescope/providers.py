"""
Attribute providers for devicescope.

Each provider reads one slice of device facts and returns them as a flat
mapping of display key to value. Providers fail independently; the collector
turns a failure into the provider's fallback entry.
"""

import asyncio
import locale
import os
import platform
import shutil
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from importlib import metadata
from pathlib import Path

import psutil

from devicescope.config import DeviceScopeConfig
from devicescope.errors import ProviderPermissionDenied, ProviderUnavailable
from devicescope.models import (
    AppState,
    BatteryState,
    DeviceType,
    Orientation,
    PowerMode,
    ProviderResult,
    display_text,
)

APP_NAME = "DeviceScope"
APP_ID = "devicescope"
LOW_POWER_THRESHOLD = 20.0  # Battery percent at which an unplugged device is in low power mode

_DMI_ROOT = Path("/sys/class/dmi/id")
_VIRTUAL_PRODUCTS = ("virtualbox", "vmware", "kvm", "qemu", "virtual machine", "bochs")
_CONNECTION_PREFIXES = (
    ("wl", "wifi"),
    ("ww", "cellular"),
    ("eth", "ethernet"),
    ("en", "ethernet"),
)

SizeSource = Callable[[], tuple[int, int]]
StateSource = Callable[[], AppState]


def format_bytes(size: float) -> str:
    """Format bytes as a human-readable string."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024:
            return f"{size:.2f} {unit}" if unit != "B" else f"{int(size)} B"
        size = size / 1024
    return f"{size:.2f} TB"


def format_uptime(seconds: float) -> str:
    """Format a duration as ``D days, HH:MM:SS``."""
    days = int(seconds // 86400)
    hours = int((seconds % 86400) // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    if days > 0:
        return f"{days} days, {hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def terminal_size() -> tuple[int, int]:
    size = shutil.get_terminal_size()
    return size.columns, size.lines


def _read_dmi(name: str) -> str | None:
    try:
        value = (_DMI_ROOT / name).read_text().strip()
    except OSError:
        return None
    return value or None


class AttributeProvider(ABC):
    """
    Base class for a source of device attributes.

    Subclasses set ``name``, ``keys`` (every key the provider may emit,
    fallback keys included) and ``error_key``, and implement ``query()``.
    """

    name: str = "provider"
    keys: tuple[str, ...] = ()
    error_key: str = "Error"

    @abstractmethod
    async def query(self) -> ProviderResult:
        """Read the provider's attributes. May raise."""

    def fallback(self, error: BaseException) -> ProviderResult:
        """Map a failure to the attributes shown in place of real data."""
        return {self.error_key: str(error) or type(error).__name__}

    @property
    def declared_keys(self) -> frozenset[str]:
        return frozenset(self.keys) | {self.error_key}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class DeviceProvider(AttributeProvider):
    """Identity and hardware of the host machine."""

    name = "device"
    keys = (
        "Device Name",
        "Device Type",
        "Brand",
        "Manufacturer",
        "Model Name",
        "Platform",
        "Platform Version",
        "Is Device",
        "Model ID",
        "Product Name",
        "Total Memory",
        "Supported CPU Architectures",
        "CPU Cores",
        "Logical CPUs",
        "CPU Frequency",
    )
    error_key = "Device Error"

    async def query(self) -> ProviderResult:
        return await asyncio.to_thread(self._read)

    def _read(self) -> ProviderResult:
        uname = platform.uname()
        product = _read_dmi("product_name")
        is_virtual = product is not None and any(v in product.lower() for v in _VIRTUAL_PRODUCTS)
        physical_cores = psutil.cpu_count(logical=False)
        logical_cpus = psutil.cpu_count()

        return {
            "Device Name": uname.node or "Unknown",
            "Device Type": display_text(self._device_type()),
            "Brand": _read_dmi("board_vendor") or "Unknown",
            "Manufacturer": _read_dmi("sys_vendor") or "Unknown",
            "Model Name": product or "Unknown",
            "Platform": uname.system or "Unknown",
            "Platform Version": uname.release or "Unknown",
            "Is Device": "No (Virtual Machine)" if is_virtual else "Yes",
            "Model ID": _read_dmi("product_sku") or "Unknown",
            "Product Name": _read_dmi("product_family") or "Unknown",
            "Total Memory": format_bytes(psutil.virtual_memory().total),
            "Supported CPU Architectures": uname.machine or "Unknown",
            "CPU Cores": str(physical_cores) if physical_cores else "Unknown",
            "Logical CPUs": str(logical_cpus) if logical_cpus else "Unknown",
            "CPU Frequency": self._cpu_frequency(),
        }

    def _device_type(self) -> DeviceType:
        try:
            battery = psutil.sensors_battery()
        except (AttributeError, NotImplementedError, OSError):
            return DeviceType.UNKNOWN
        return DeviceType.LAPTOP if battery is not None else DeviceType.DESKTOP

    def _cpu_frequency(self) -> str:
        try:
            freq = psutil.cpu_freq()
        except (AttributeError, NotImplementedError, OSError):
            return "Unknown"
        if not freq or not freq.current:
            return "Unknown"
        return f"{freq.current:.0f} MHz"


class DisplayProvider(AttributeProvider):
    """Size and capabilities of the display the app renders into."""

    name = "display"
    keys = ("Screen Width", "Screen Height", "Terminal Type", "Color Support")
    error_key = "Display Error"

    def __init__(self, size_source: SizeSource = terminal_size) -> None:
        self._size_source = size_source

    async def query(self) -> ProviderResult:
        width, height = self._size_source()
        return {
            "Screen Width": f"{width} cols",
            "Screen Height": f"{height} rows",
            "Terminal Type": os.environ.get("TERM") or "Unknown",
            "Color Support": os.environ.get("COLORTERM") or "Standard",
        }


class OrientationProvider(AttributeProvider):
    """Screen orientation derived from the display size."""

    name = "orientation"
    keys = ("Screen Orientation",)
    error_key = "Screen Orientation"

    def __init__(self, size_source: SizeSource = terminal_size) -> None:
        self._size_source = size_source

    async def query(self) -> ProviderResult:
        return {"Screen Orientation": display_text(self.orientation(*self._size_source()))}

    @staticmethod
    def orientation(width: int, height: int) -> Orientation:
        if width <= 0 or height <= 0:
            return Orientation.UNKNOWN
        # Terminal cells are about twice as tall as they are wide
        if width >= height * 2:
            return Orientation.LANDSCAPE_LEFT
        return Orientation.PORTRAIT_UP

    def fallback(self, error: BaseException) -> ProviderResult:
        return {"Screen Orientation": display_text(Orientation.UNKNOWN)}


class NetworkProvider(AttributeProvider):
    """Network interfaces, connection type and optional reachability check."""

    name = "network"
    keys = ("Connection Type", "Is Connected", "Is Internet Reachable", "Network Interfaces")
    error_key = "Network Error"

    def __init__(
        self,
        reachability_host: str | None = None,
        reachability_port: int = 53,
        connect_timeout: float = 2.0,
    ) -> None:
        self._host = reachability_host
        self._port = reachability_port
        self._connect_timeout = connect_timeout

    async def query(self) -> ProviderResult:
        stats = await asyncio.to_thread(psutil.net_if_stats)
        active = [name for name, st in stats.items() if st.isup and not name.startswith("lo")]
        interfaces = {
            name: (f"up, {st.speed} Mb/s" if st.speed else "up") if st.isup else "down"
            for name, st in sorted(stats.items())
        }
        reachable = await self._check_reachable() if active else False

        return {
            "Connection Type": self.connection_type(active[0]) if active else "none",
            "Is Connected": "Yes" if active else "No",
            "Is Internet Reachable": (
                "Not checked" if reachable is None else ("Yes" if reachable else "No")
            ),
            "Network Interfaces": interfaces,
        }

    @staticmethod
    def connection_type(interface: str) -> str:
        for prefix, kind in _CONNECTION_PREFIXES:
            if interface.startswith(prefix):
                return kind
        return "other"

    async def _check_reachable(self) -> bool | None:
        """Try a TCP connection to the configured host. None if not configured."""
        if self._host is None:
            return None
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self._host, self._port), timeout=self._connect_timeout
            )
        except (OSError, asyncio.TimeoutError):
            return False
        writer.close()
        await writer.wait_closed()
        return True


class BatteryProvider(AttributeProvider):
    """Battery charge and power state."""

    name = "battery"
    keys = ("Battery Level", "Battery State", "Power Mode", "Time Remaining")
    error_key = "Battery Error"

    async def query(self) -> ProviderResult:
        try:
            battery = await asyncio.to_thread(psutil.sensors_battery)
        except (AttributeError, NotImplementedError) as e:
            raise ProviderUnavailable("Not available") from e
        if battery is None:
            raise ProviderUnavailable("Not available")

        percent, plugged = battery.percent, battery.power_plugged
        return {
            "Battery Level": f"{round(percent)}%",
            "Battery State": display_text(self.battery_state(percent, plugged)),
            "Power Mode": display_text(self.power_mode(percent, plugged)),
            "Time Remaining": self._time_remaining(battery.secsleft),
        }

    def fallback(self, error: BaseException) -> ProviderResult:
        return {"Battery Error": "Not available"}

    @staticmethod
    def battery_state(percent: float, plugged: bool | None) -> BatteryState:
        if plugged is None:
            return BatteryState.UNKNOWN
        if plugged:
            return BatteryState.FULL if percent >= 100 else BatteryState.CHARGING
        return BatteryState.UNPLUGGED

    @staticmethod
    def power_mode(percent: float, plugged: bool | None) -> PowerMode:
        if plugged is None:
            return PowerMode.UNKNOWN
        if not plugged and percent <= LOW_POWER_THRESHOLD:
            return PowerMode.LOW_POWER
        return PowerMode.NORMAL

    @staticmethod
    def _time_remaining(secsleft: int) -> str:
        if secsleft == psutil.POWER_TIME_UNLIMITED:
            return "Unlimited (plugged in)"
        if secsleft == psutil.POWER_TIME_UNKNOWN or secsleft < 0:
            return "Unknown"
        return format_uptime(secsleft)


class ApplicationProvider(AttributeProvider):
    """Identity and state of this application process."""

    name = "application"
    keys = (
        "App Name",
        "App Version",
        "App ID",
        "App State",
        "Process ID",
        "Start Time",
        "Runtime Environment",
    )
    error_key = "Application Error"

    def __init__(self, state_source: StateSource = lambda: AppState.ACTIVE) -> None:
        self._state_source = state_source

    async def query(self) -> ProviderResult:
        process = psutil.Process()
        started = datetime.fromtimestamp(process.create_time())
        return {
            "App Name": APP_NAME,
            "App Version": app_version(),
            "App ID": APP_ID,
            "App State": display_text(self._state_source()),
            "Process ID": str(process.pid),
            "Start Time": started.strftime("%Y-%m-%d %H:%M:%S"),
            "Runtime Environment": (
                f"{platform.python_implementation()} {platform.python_version()}"
            ),
        }


def app_version() -> str:
    try:
        return metadata.version(APP_ID)
    except metadata.PackageNotFoundError:
        return "Unknown"


class SystemProvider(AttributeProvider):
    """Operating system and session details."""

    name = "system"
    keys = (
        "Operating System",
        "Kernel",
        "Architecture",
        "Session ID",
        "Device Language",
        "Available Memory",
        "Boot Time",
    )
    error_key = "System Error"

    def __init__(self) -> None:
        self._session_id = uuid.uuid4().hex

    async def query(self) -> ProviderResult:
        return await asyncio.to_thread(self._read)

    def _read(self) -> ProviderResult:
        language = locale.getlocale()[0] or os.environ.get("LANG") or "Unknown"
        boot = datetime.fromtimestamp(psutil.boot_time())
        return {
            "Operating System": platform.platform(),
            "Kernel": platform.version() or "Unknown",
            "Architecture": platform.machine() or "Unknown",
            "Session ID": self._session_id,
            "Device Language": language,
            "Available Memory": format_bytes(psutil.virtual_memory().available),
            "Boot Time": boot.strftime("%Y-%m-%d %H:%M:%S"),
        }


class PerformanceProvider(AttributeProvider):
    """Point-in-time load figures for the whole machine."""

    name = "performance"
    keys = ("CPU Usage", "Load Average", "Memory Usage", "Swap Usage", "Process Count", "Uptime")
    error_key = "Performance Error"

    def __init__(self) -> None:
        # Initialize CPU percent (first call returns 0.0)
        psutil.cpu_percent()

    async def query(self) -> ProviderResult:
        return await asyncio.to_thread(self._read)

    def _read(self) -> ProviderResult:
        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()
        load_avg = psutil.getloadavg()
        return {
            "CPU Usage": f"{psutil.cpu_percent():.1f}%",
            "Load Average": f"{load_avg[0]:.2f} {load_avg[1]:.2f} {load_avg[2]:.2f}",
            "Memory Usage": f"{mem.percent:.1f}% of {format_bytes(mem.total)}",
            "Swap Usage": f"{swap.percent:.1f}% of {format_bytes(swap.total)}",
            "Process Count": str(len(psutil.pids())),
            "Uptime": format_uptime(time.time() - psutil.boot_time()),
        }


@dataclass(slots=True, frozen=True)
class Coordinates:
    """A position fix from a location service."""

    latitude: float
    longitude: float
    accuracy: float
    altitude: float | None = None
    heading: float | None = None
    speed: float | None = None


Locator = Callable[[], Awaitable[Coordinates]]


class LocationProvider(AttributeProvider):
    """
    Geographic position from an injected locator.

    A host has no location service of its own, so without a locator the
    provider reports that permission was denied.
    """

    name = "location"
    keys = ("Latitude", "Longitude", "Accuracy", "Altitude", "Heading", "Speed", "Location")
    error_key = "Location Error"

    def __init__(self, locator: Locator | None = None) -> None:
        self._locator = locator

    async def query(self) -> ProviderResult:
        if self._locator is None:
            raise ProviderPermissionDenied("Permission denied")
        fix = await self._locator()
        return {
            "Latitude": f"{fix.latitude:.6f}",
            "Longitude": f"{fix.longitude:.6f}",
            "Accuracy": f"{fix.accuracy} meters",
            "Altitude": f"{fix.altitude} meters" if fix.altitude else "Not available",
            "Heading": f"{fix.heading}°" if fix.heading else "Not available",
            "Speed": f"{fix.speed} m/s" if fix.speed else "Not available",
        }

    def fallback(self, error: BaseException) -> ProviderResult:
        if isinstance(error, ProviderPermissionDenied):
            return {"Location": "Permission denied"}
        return {"Location Error": str(error) or type(error).__name__}


def default_providers(
    config: DeviceScopeConfig | None = None,
    size_source: SizeSource = terminal_size,
    state_source: StateSource = lambda: AppState.ACTIVE,
    locator: Locator | None = None,
) -> list[AttributeProvider]:
    """Build the standard provider set for the host machine."""
    config = config or DeviceScopeConfig()
    return [
        DeviceProvider(),
        DisplayProvider(size_source),
        OrientationProvider(size_source),
        NetworkProvider(config.reachability_host, config.reachability_port),
        BatteryProvider(),
        ApplicationProvider(state_source),
        SystemProvider(),
        PerformanceProvider(),
        LocationProvider(locator),
    ]
