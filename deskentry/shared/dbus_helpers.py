import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import structlog
from dbus_fast import BusType, Message, MessageType
from dbus_fast.aio import MessageBus

from deskentry.shared.concurrency_helper import run_coroutine_blocking

SWITCHEROO_SERVICE = "net.hadess.SwitcherooControl"
SWITCHEROO_PATH = "/net/hadess/SwitcherooControl"
SWITCHEROO_INTERFACE = "net.hadess.SwitcherooControl"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"

DEFAULT_TIMEOUT = 2.0


class PreferenceKind(enum.Enum):
    DEFAULT = "default"
    NON_DEFAULT = "non-default"
    SPECIFIC_INDEX = "index"


@dataclass(frozen=True)
class GpuPreference:
    """Which GPU a launched application should run on."""

    kind: PreferenceKind
    index: Optional[int] = None

    @classmethod
    def specific(cls, index: int) -> "GpuPreference":
        if index < 0:
            raise ValueError(f"GPU index must not be negative: {index}")
        return cls(PreferenceKind.SPECIFIC_INDEX, index)

    @classmethod
    def parse(cls, text: str) -> "GpuPreference":
        """Accepts 'default', 'non-default' or a GPU index."""
        text = text.strip().lower()
        if text == PreferenceKind.DEFAULT.value:
            return cls.DEFAULT
        if text in (PreferenceKind.NON_DEFAULT.value, "non_default", "nondefault"):
            return cls.NON_DEFAULT
        if text.isdigit():
            return cls.specific(int(text))
        raise ValueError(f"invalid GPU preference: {text!r}")

    def __str__(self) -> str:
        if self.kind is PreferenceKind.SPECIFIC_INDEX:
            return f"GPU #{self.index}"
        return f"{self.kind.value} GPU"


GpuPreference.DEFAULT = GpuPreference(PreferenceKind.DEFAULT)
GpuPreference.NON_DEFAULT = GpuPreference(PreferenceKind.NON_DEFAULT)


@dataclass(frozen=True)
class Gpu:
    name: str
    environment: Dict[str, str] = field(default_factory=dict)
    is_default: bool = False


def select_gpu(gpus: Sequence[Gpu], preference: GpuPreference) -> Optional[Gpu]:
    """
    Picks a GPU from the service's list.

    DEFAULT is the first GPU flagged default, NON_DEFAULT the first one not
    flagged, SPECIFIC_INDEX the GPU at that position (None when out of range).
    """
    if preference.kind is PreferenceKind.SPECIFIC_INDEX:
        if preference.index is not None and 0 <= preference.index < len(gpus):
            return gpus[preference.index]
        return None
    wanted = preference.kind is PreferenceKind.DEFAULT
    for gpu in gpus:
        if gpu.is_default == wanted:
            return gpu
    return None


def _unwrap(value: Any) -> Any:
    return getattr(value, "value", value)


def gpu_from_record(record: Dict[str, Any]) -> Gpu:
    """Builds a Gpu from one a{sv} record of the switcheroo GPUs property."""
    flat_env = list(_unwrap(record.get("Environment", [])))
    if len(flat_env) % 2:
        raise ValueError(f"odd-length Environment list: {flat_env!r}")
    return Gpu(
        name=str(_unwrap(record.get("Name", ""))),
        environment=dict(zip(flat_env[0::2], flat_env[1::2])),
        is_default=bool(_unwrap(record.get("Default", False))),
    )


class SwitcherooClient:
    """Reads the GPU list published by switcheroo-control on the system bus."""

    def __init__(self, bus_type: BusType = BusType.SYSTEM):
        self.bus_type = bus_type

    async def list_gpus(self) -> List[Gpu]:
        bus = await MessageBus(bus_type=self.bus_type).connect()
        try:
            reply = await bus.call(
                Message(
                    destination=SWITCHEROO_SERVICE,
                    path=SWITCHEROO_PATH,
                    interface=PROPERTIES_INTERFACE,
                    member="Get",
                    signature="ss",
                    body=[SWITCHEROO_INTERFACE, "GPUs"],
                )
            )
        finally:
            bus.disconnect()
        if reply.message_type == MessageType.ERROR:
            raise RuntimeError(f"{reply.error_name}: {reply.body}")
        return [gpu_from_record(record) for record in _unwrap(reply.body[0])]


class GpuResolver:
    """
    Turns a GpuPreference into the environment variables of the chosen GPU.

    The GPU service is optional: a missing bus, a missing service, an error
    reply, a malformed answer or a timeout all resolve to None.
    """

    def __init__(
        self,
        client: Optional[SwitcherooClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
        logger: Any = None,
    ):
        self.client = client or SwitcherooClient()
        self.timeout = timeout
        self.logger = logger or structlog.get_logger()

    async def list_gpus_async(self) -> Optional[List[Gpu]]:
        try:
            return await asyncio.wait_for(self.client.list_gpus(), self.timeout)
        except Exception as e:
            self.logger.debug(f"GPU service unavailable: {e!r}")
            return None

    def list_gpus(self) -> Optional[List[Gpu]]:
        """Blocking form of list_gpus_async, bounded by the resolver timeout."""
        try:
            return run_coroutine_blocking(self.list_gpus_async(), self.timeout + 0.5)
        except Exception as e:
            self.logger.debug(f"GPU query did not complete: {e!r}")
            return None

    async def resolve_async(self, preference: GpuPreference) -> Optional[Dict[str, str]]:
        gpus = await self.list_gpus_async()
        return self._environment_for(gpus, preference)

    def resolve(self, preference: GpuPreference) -> Optional[Dict[str, str]]:
        return self._environment_for(self.list_gpus(), preference)

    def _environment_for(
        self, gpus: Optional[List[Gpu]], preference: GpuPreference
    ) -> Optional[Dict[str, str]]:
        if gpus is None:
            return None
        gpu = select_gpu(gpus, preference)
        if gpu is None:
            self.logger.debug(f"No GPU matches {preference} among {len(gpus)} GPU(s)")
            return None
        self.logger.debug(f"Selected GPU {gpu.name!r} for {preference}")
        return dict(gpu.environment)
