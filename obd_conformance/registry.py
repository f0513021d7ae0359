"""Per-run registry of the OBD modules on the vehicle under test"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from .lookup import address_name
from .packets import MessageType, ParsedPacket

logger = logging.getLogger(__name__)

MAX_MODULE_ADDRESS = 253


@dataclass
class ObdModuleInformation:
    """One OBD module found during address claim"""

    address: int
    function: int = 0
    baselines: Dict[MessageType, ParsedPacket] = field(default_factory=dict)

    def __post_init__(self):
        if not 0 <= self.address <= MAX_MODULE_ADDRESS:
            raise ValueError(f"Module address must be 0-{MAX_MODULE_ADDRESS}, got {self.address}")


class ModuleRegistry:
    """
    OBD modules of one run.

    Built once before the steps execute and passed to every component
    that needs it. Only baseline capture writes to it after that.
    """

    def __init__(
        self,
        modules: Iterable[ObdModuleInformation] = (),
        address_names: Optional[Mapping[int, str]] = None,
    ):
        self._modules: Dict[int, ObdModuleInformation] = {}
        self._address_names = dict(address_names or {})
        for module in modules:
            self.add(module)

    def add(self, module: ObdModuleInformation):
        if module.address in self._modules:
            raise ValueError(f"Duplicate module address: {module.address}")
        self._modules[module.address] = module
        logger.debug(f"Registered OBD module {self.name(module.address)}")

    def obd_addresses(self) -> List[int]:
        return sorted(self._modules)

    def is_obd_module(self, address: int) -> bool:
        return address in self._modules

    def get(self, address: int) -> Optional[ObdModuleInformation]:
        return self._modules.get(address)

    def name(self, address: int) -> str:
        return address_name(address, self._address_names)

    def set_baseline(self, packet: ParsedPacket):
        """Record a packet as the pre-clear value for its module and type"""
        module = self._modules.get(packet.source_address)
        if module is None:
            logger.warning(f"Ignoring baseline from non-OBD module {self.name(packet.source_address)}")
            return
        module.baselines[packet.message_type] = packet

    def baseline(self, address: int, message_type: MessageType) -> Optional[ParsedPacket]:
        module = self._modules.get(address)
        return module.baselines.get(message_type) if module else None

    def __iter__(self) -> Iterator[ObdModuleInformation]:
        return iter(self._modules[a] for a in self.obd_addresses())

    def __len__(self) -> int:
        return len(self._modules)
