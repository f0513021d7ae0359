"""J1939 source address name lookup"""

from typing import Dict, Mapping, Optional

# SAE J1939 preferred source addresses
ADDRESS_NAMES: Dict[int, str] = {
    0x00: "Engine #1",
    0x01: "Engine #2",
    0x02: "Turbocharger",
    0x03: "Transmission #1",
    0x04: "Transmission #2",
    0x05: "Shift Console - Primary",
    0x06: "Shift Console - Secondary",
    0x07: "Power TakeOff - (Main or Rear)",
    0x08: "Axle - Steering",
    0x09: "Axle - Drive #1",
    0x0A: "Axle - Drive #2",
    0x0B: "Brakes - System Controller",
    0x0C: "Brakes - Steer Axle",
    0x0D: "Brakes - Drive axle #1",
    0x0F: "Retarder - Engine",
    0x10: "Retarder - Driveline",
    0x11: "Cruise Control",
    0x12: "Fuel System",
    0x13: "Steering Controller",
    0x17: "Instrument Cluster #1",
    0x19: "Passenger-Operator Climate Control #1",
    0x1E: "Electrical System",
    0x21: "Body Controller",
    0x24: "Aerodynamic Control Unit",
    0x27: "Hybrid System Controller",
    0x28: "Headway Controller",
    0x31: "Cab Controller - Primary",
    0x3D: "Exhaust Emission Controller",
    0x3E: "Vehicle Dynamic Stability Controller",
    0x42: "Engine Valve Controller",
    0x55: "Aftertreatment #1 system gas intake",
    0x8C: "Aftertreatment #1 system gas outlet",
    0xE8: "Exhaust Emission Controller #2",
    0xF9: "Off Board Diagnostic-Service Tool #1",
    0xFA: "Off Board Diagnostic-Service Tool #2",
    0xFE: "Null Address",
    0xFF: "Global",
}


def address_name(address: int, overrides: Optional[Mapping[int, str]] = None) -> str:
    """
    Get the display name of a source address

    Args:
        address: J1939 source address
        overrides: Optional names that take precedence over the J1939 table
    Returns:
        Name with the address in parentheses, e.g. "Engine #1 (0)"
    """
    name = (overrides or {}).get(address) or ADDRESS_NAMES.get(address, "Unknown")
    return f"{name} ({address})"
