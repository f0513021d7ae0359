"""FastAPI-based HTTP server for the simulated vehicle

This module exposes the simulated J1939 bus over a REST API so the
conformance steps can run in a separate process from the vehicle, the
way they would against a real vehicle adapter.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, status
from pydantic import BaseModel, Field, field_validator

from obd_conformance.config import ClearBehavior, load_vehicle_config
from obd_conformance.errors import GatewayUnavailableError
from obd_conformance.packets import DiagnosticTroubleCode, MessageType

from .obd_ecu import BusMessage, DtcKind, SimulatedObdEcu
from .vehicle_bus import SimulatedVehicleBus

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "OBD_VEHICLE_CONFIG"

# Global bus instance
bus_instance: Optional[SimulatedVehicleBus] = None


# =============================================================================
# Pydantic Models for Request/Response Validation
# =============================================================================


class MessageModel(BaseModel):
    """One raw message put on the bus"""

    message_type: str = Field(..., description="Message type name, e.g. DM6")
    source_address: int = Field(..., description="Source address of the responding module")
    data: str = Field(..., description="Payload as hex")

    @classmethod
    def from_message(cls, message: BusMessage) -> "MessageModel":
        return cls(
            message_type=message.message_type.name,
            source_address=message.source_address,
            data=message.data.hex(),
        )


class GlobalResponse(BaseModel):
    """Response model for a global request"""

    messages: List[MessageModel] = Field(default_factory=list)


class RequestPayload(BaseModel):
    """Optional body of a request for a command message such as DM22"""

    data: str = Field("", description="Request payload as hex")

    @field_validator("data")
    @classmethod
    def validate_data(cls, v: str) -> str:
        """Validate the payload is hex"""
        try:
            bytes.fromhex(v)
        except ValueError as e:
            raise ValueError("Payload must be hex") from e
        return v

    def to_bytes(self) -> bytes:
        return bytes.fromhex(self.data)


class DirectedResponse(BaseModel):
    """Response model for a destination specific request; no message means timeout"""

    message: Optional[MessageModel] = None


class DtcRequest(BaseModel):
    """Request model for implanting a DTC (fault injection)"""

    spn: int = Field(..., description="Suspect Parameter Number")
    fmi: int = Field(..., description="Failure Mode Indicator", ge=0, le=31)
    occurrence_count: int = Field(1, ge=0, le=127)
    kind: DtcKind = DtcKind.ACTIVE

    @field_validator("spn")
    @classmethod
    def validate_spn(cls, v: int) -> int:
        """Validate SPN fits in 19 bits"""
        if not 0 <= v <= 0x7FFFF:
            raise ValueError("SPN must be between 0 and 524287")
        return v


class OnlineRequest(BaseModel):
    """Request model for taking a module or the bus on/offline"""

    online: bool


class ClearBehaviorRequest(BaseModel):
    """Request model for changing how a module handles DM11"""

    behavior: ClearBehavior


class DriveCycleRequest(BaseModel):
    """Request model for simulating a drive cycle"""

    hours: float = Field(..., description="Engine run time in hours", ge=0)
    km: int = Field(0, description="Distance driven in km", ge=0)


class ModuleStatusResponse(BaseModel):
    """Response model for module status"""

    address: int
    function: int
    obd: bool
    online: bool
    running: bool
    mil_status: str
    active_dtcs: List[str] = Field(default_factory=list)
    previously_active_dtcs: List[str] = Field(default_factory=list)
    pending_dtcs: List[str] = Field(default_factory=list)
    permanent_dtcs: List[str] = Field(default_factory=list)
    supported_monitors: List[str] = Field(default_factory=list)
    complete_monitors: List[str] = Field(default_factory=list)
    warm_ups_since_clear: int
    minutes_since_codes_cleared: int
    engine_hours: float
    idle_hours: float
    clear_behavior: str


class HealthResponse(BaseModel):
    """Response model for health check"""

    status: str
    version: str = "0.1.0"


class SuccessResponse(BaseModel):
    """Generic success response"""

    message: str
    details: Optional[Dict] = None


# =============================================================================
# Lifespan Management
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - build and tear down the simulated vehicle"""
    global bus_instance

    # Startup
    logger.info("Starting vehicle simulation server")
    config = load_vehicle_config(os.environ.get(CONFIG_ENV_VAR))
    bus_instance = SimulatedVehicleBus.from_config(config)
    for ecu in bus_instance.ecus.values():
        await ecu.start()
    logger.info(f"Simulated vehicle with {len(bus_instance.ecus)} modules initialized")

    yield

    # Shutdown
    logger.info("Shutting down vehicle simulation server")
    if bus_instance:
        for ecu in bus_instance.ecus.values():
            await ecu.stop()
        bus_instance = None
    logger.info("Vehicle simulation server stopped")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Vehicle Simulation Server",
    description="REST API for a simulated J1939 vehicle in OBD conformance testing",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


# =============================================================================
# Helper Functions
# =============================================================================


def get_bus() -> SimulatedVehicleBus:
    """Get the global bus instance"""
    if bus_instance is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Vehicle not initialized")
    return bus_instance


def get_module(address: int) -> SimulatedObdEcu:
    """Get a module, 404 if there is none at the address"""
    ecu = get_bus().get_ecu(address)
    if ecu is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Module {address} not found. Known: {sorted(get_bus().ecus)}",
        )
    return ecu


def get_message_type(name: str) -> MessageType:
    """Resolve a message type name, 404 if unknown"""
    try:
        return MessageType[name.upper()]
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown message type: {name}") from None


# =============================================================================
# Bus Endpoints
# =============================================================================


@app.post("/bus/global/{message_type}", response_model=GlobalResponse, tags=["Bus"])
async def request_global(message_type: str, payload: Optional[RequestPayload] = None) -> GlobalResponse:
    """
    Send a global request

    - **message_type**: Requested message, e.g. DM6
    - **payload**: Request payload for command messages
    """
    requested = get_message_type(message_type)
    data = payload.to_bytes() if payload else b""
    try:
        messages = get_bus().transmit_global(requested, data)
    except GatewayUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e
    return GlobalResponse(messages=[MessageModel.from_message(m) for m in messages])


@app.post("/bus/directed/{message_type}/{address}", response_model=DirectedResponse, tags=["Bus"])
async def request_directed(
    message_type: str, address: int, payload: Optional[RequestPayload] = None
) -> DirectedResponse:
    """
    Send a destination specific request

    - **message_type**: Requested message, e.g. DM6
    - **address**: Destination address
    - **payload**: Request payload for command messages
    """
    requested = get_message_type(message_type)
    data = payload.to_bytes() if payload else b""
    try:
        message = get_bus().transmit_directed(requested, address, data)
    except GatewayUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e
    return DirectedResponse(message=MessageModel.from_message(message) if message else None)


@app.put("/bus/online", response_model=SuccessResponse, tags=["Bus"])
async def set_bus_online(request: OnlineRequest) -> SuccessResponse:
    """Take the whole bus on or offline"""
    get_bus().online = request.online
    logger.info(f"Bus online set to {request.online}")
    return SuccessResponse(message=f"Bus {'online' if request.online else 'offline'}")


@app.get("/bus/statistics", response_model=SuccessResponse, tags=["Bus"])
async def get_statistics() -> SuccessResponse:
    """Get bus statistics"""
    return SuccessResponse(message="Bus statistics", details=get_bus().get_statistics())


# =============================================================================
# Module Endpoints
# =============================================================================


@app.get("/modules", response_model=List[ModuleStatusResponse], tags=["Modules"])
async def list_modules() -> List[ModuleStatusResponse]:
    """Get the state of every module, in address order"""
    bus = get_bus()
    return [ModuleStatusResponse(**bus.ecus[a].to_dict()) for a in sorted(bus.ecus)]


@app.get("/modules/{address}", response_model=ModuleStatusResponse, tags=["Modules"])
async def get_module_status(address: int) -> ModuleStatusResponse:
    """Get the state of one module"""
    return ModuleStatusResponse(**get_module(address).to_dict())


@app.put("/modules/{address}/online", response_model=SuccessResponse, tags=["Modules"])
async def set_module_online(address: int, request: OnlineRequest) -> SuccessResponse:
    """Make a module answer or stay silent"""
    get_module(address).online = request.online
    logger.info(f"Module {address} online set to {request.online}")
    return SuccessResponse(message=f"Module {address} {'online' if request.online else 'offline'}")


# =============================================================================
# Fault Injection Endpoints
# =============================================================================


@app.post("/modules/{address}/dtcs", response_model=SuccessResponse, tags=["Fault Injection"])
async def implant_dtc(address: int, request: DtcRequest) -> SuccessResponse:
    """
    Implant a DTC in a module

    - **spn**, **fmi**, **occurrence_count**: The DTC
    - **kind**: active, previously_active, pending or permanent
    """
    dtc = DiagnosticTroubleCode(request.spn, request.fmi, request.occurrence_count)
    get_module(address).implant_dtc(dtc, request.kind)
    return SuccessResponse(
        message=f"DTC {request.spn}:{request.fmi} implanted",
        details={"address": address, "kind": request.kind.value},
    )


@app.put("/modules/{address}/clear-behavior", response_model=SuccessResponse, tags=["Fault Injection"])
async def set_clear_behavior(address: int, request: ClearBehaviorRequest) -> SuccessResponse:
    """Change how a module handles a global DM11"""
    get_module(address).clear_behavior = request.behavior
    logger.info(f"Module {address} DM11 behavior set to {request.behavior.value}")
    return SuccessResponse(message=f"Module {address} DM11 behavior set to {request.behavior.value}")


@app.post("/modules/{address}/corrupt/{message_type}", response_model=SuccessResponse, tags=["Fault Injection"])
async def corrupt_message(address: int, message_type: str) -> SuccessResponse:
    """Make a module send a malformed payload for one message type"""
    corrupted = get_message_type(message_type)
    get_module(address).corrupted.add(corrupted)
    return SuccessResponse(message=f"Module {address} now corrupts {corrupted.label}")


@app.delete("/modules/{address}/corrupt", response_model=SuccessResponse, tags=["Fault Injection"])
async def clear_corruption(address: int) -> SuccessResponse:
    """Stop sending malformed payloads"""
    get_module(address).corrupted.clear()
    return SuccessResponse(message=f"Module {address} corruption cleared")


@app.post("/modules/{address}/reset-retained", response_model=SuccessResponse, tags=["Fault Injection"])
async def reset_retained(address: int) -> SuccessResponse:
    """Reset the counters a compliant module keeps through a DM11"""
    get_module(address).reset_retained_data()
    return SuccessResponse(message=f"Module {address} retained data reset")


# =============================================================================
# Simulation Control Endpoints
# =============================================================================


@app.post("/modules/{address}/drive-cycle", response_model=SuccessResponse, tags=["Simulation"])
async def drive_cycle(address: int, request: DriveCycleRequest) -> SuccessResponse:
    """
    Simulate one drive cycle

    - **hours**: Engine run time
    - **km**: Distance driven
    """
    ecu = get_module(address)
    ecu.simulate_drive_cycle(request.hours, request.km)
    return SuccessResponse(
        message="Drive cycle completed",
        details={"engine_hours": ecu.engine_hours, "warm_ups_since_clear": ecu.warm_ups_since_clear},
    )


@app.post("/modules/{address}/monitors/complete", response_model=SuccessResponse, tags=["Simulation"])
async def complete_monitors(address: int) -> SuccessResponse:
    """Mark every supported monitor of a module complete"""
    get_module(address).complete_monitors_now()
    return SuccessResponse(message=f"Module {address} monitors complete")


# =============================================================================
# System Endpoints
# =============================================================================


@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check() -> HealthResponse:
    """
    Health check endpoint for CI/CD and monitoring

    Returns server health status and version.
    """
    bus = get_bus()
    return HealthResponse(status="healthy" if bus.online else "offline", version="0.1.0")


# =============================================================================
# Main Entry Point
# =============================================================================


def main():
    """Run the FastAPI server"""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    uvicorn.run(
        "vehicle_simulation.vehicle_server:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":
    main()
