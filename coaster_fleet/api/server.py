"""
HTTP front end for coaster and wagon records
"""
import json
import logging
import os
import time
from typing import Optional

import psutil
from aiohttp import web
from pydantic import ValidationError

from ..cluster.coordinator import Coordinator
from ..core.errors import StoreError
from ..core.models import Coaster, CoasterUpdate, Wagon, new_record_id
from ..monitoring.reporter import StatusReporter
from ..storage.store import RecordStore
from ..sync.propagator import ChangePropagator


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"success": False, "error": message}, status=status)


def _validation_message(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg')}" if location else item.get("msg", ""))
    return "; ".join(parts)


class ApiServer:
    """
    REST API under ``/api`` plus a ``/health`` probe

    Reads go straight to the record store; every mutation goes through the
    change propagator so peers hear about it.
    """

    def __init__(self, store: RecordStore, propagator: ChangePropagator,
                 reporter: StatusReporter, coordinator: Coordinator):
        self.store = store
        self.propagator = propagator
        self.reporter = reporter
        self.coordinator = coordinator
        self.logger = logging.getLogger("ApiServer")
        self.started_at = time.time()
        self.app = web.Application()
        self.setup_routes()
        self._runner: Optional[web.AppRunner] = None

    def setup_routes(self):
        """Setup HTTP routes"""
        self.app.router.add_get('/health', self.health_check)
        self.app.router.add_get('/api/status', self.system_status)
        self.app.router.add_get('/api/coasters', self.list_coasters)
        self.app.router.add_post('/api/coasters', self.create_coaster)
        self.app.router.add_get('/api/coasters/{coaster_id}', self.get_coaster)
        self.app.router.add_put('/api/coasters/{coaster_id}', self.update_coaster)
        self.app.router.add_get('/api/coasters/{coaster_id}/wagons', self.list_wagons)
        self.app.router.add_post('/api/coasters/{coaster_id}/wagons', self.add_wagon)
        self.app.router.add_delete('/api/coasters/{coaster_id}/wagons/{wagon_id}', self.remove_wagon)

    async def _json_body(self, request) -> dict:
        try:
            body = await request.json()
        except json.JSONDecodeError:
            raise web.HTTPBadRequest(
                text=json.dumps({"success": False, "error": "Request body must be valid JSON"}),
                content_type="application/json",
            )
        if not isinstance(body, dict):
            raise web.HTTPBadRequest(
                text=json.dumps({"success": False, "error": "Request body must be a JSON object"}),
                content_type="application/json",
            )
        return body

    async def health_check(self, request):
        """Health check endpoint"""
        snapshot = self.coordinator.snapshot()
        process = psutil.Process(os.getpid())
        return web.json_response({
            "status": "healthy",
            "node_id": self.coordinator.node_id,
            "cluster": snapshot.to_dict(),
            "uptime": time.time() - self.started_at,
            "memory_usage": process.memory_percent(),
            "cpu_usage": process.cpu_percent(),
        })

    async def system_status(self, request):
        try:
            status = self.reporter.report()
        except StoreError as e:
            self.logger.error(f"Error building status report: {e}")
            return _error("Failed to build status report", 500)
        return web.json_response({"success": True, "data": status.to_dict()})

    async def list_coasters(self, request):
        try:
            coasters = self.store.list_coasters()
        except StoreError as e:
            self.logger.error(f"Error getting all coasters: {e}")
            return _error("Failed to retrieve coasters", 500)
        return web.json_response({"success": True, "data": [c.to_dict() for c in coasters]})

    async def get_coaster(self, request):
        coaster_id = request.match_info['coaster_id']
        try:
            coaster = self.store.get_coaster(coaster_id)
            if coaster is None:
                return _error("Coaster not found", 404)
            status = self.reporter.coaster_status(coaster)
        except StoreError as e:
            self.logger.error(f"Error getting coaster: {e}")
            return _error("Failed to retrieve coaster", 500)
        return web.json_response({"success": True, "data": {**coaster.to_dict(), "status": status.to_dict()}})

    async def create_coaster(self, request):
        body = await self._json_body(request)
        try:
            coaster = Coaster.model_validate({**body, "id": new_record_id()})
        except ValidationError as e:
            return _error(_validation_message(e), 400)

        try:
            await self.propagator.add_coaster(coaster)
        except StoreError as e:
            self.logger.error(f"Error creating coaster: {e}")
            return _error("Failed to create coaster", 500)

        self.logger.info(f"Created new coaster with ID: {coaster.id}")
        return web.json_response({"success": True, "data": coaster.to_dict()}, status=201)

    async def update_coaster(self, request):
        coaster_id = request.match_info['coaster_id']
        body = await self._json_body(request)
        try:
            update = CoasterUpdate.model_validate(body)
        except ValidationError as e:
            return _error(_validation_message(e), 400)

        try:
            updated = await self.propagator.update_coaster(coaster_id, update)
        except ValidationError as e:
            return _error(_validation_message(e), 400)
        except StoreError as e:
            self.logger.error(f"Error updating coaster: {e}")
            return _error("Failed to update coaster", 500)

        if updated is None:
            return _error("Coaster not found", 404)

        self.logger.info(f"Updated coaster with ID: {coaster_id}")
        return web.json_response({"success": True, "data": updated.to_dict()})

    async def list_wagons(self, request):
        coaster_id = request.match_info['coaster_id']
        try:
            if self.store.get_coaster(coaster_id) is None:
                return _error("Coaster not found", 404)
            wagons = self.store.list_wagons(coaster_id)
        except StoreError as e:
            self.logger.error(f"Error getting wagons: {e}")
            return _error("Failed to retrieve wagons", 500)
        return web.json_response({"success": True, "data": [w.to_dict() for w in wagons]})

    async def add_wagon(self, request):
        coaster_id = request.match_info['coaster_id']
        body = await self._json_body(request)
        try:
            wagon = Wagon.model_validate({**body, "id": new_record_id(), "coasterId": coaster_id})
        except ValidationError as e:
            return _error(_validation_message(e), 400)

        try:
            stored = await self.propagator.add_wagon(wagon)
        except StoreError as e:
            self.logger.error(f"Error adding wagon: {e}")
            return _error("Failed to add wagon", 500)

        if stored is None:
            return _error("Coaster not found", 404)

        self.logger.info(f"Added new wagon with ID: {wagon.id} to coaster: {coaster_id}")
        return web.json_response({"success": True, "data": stored.to_dict()}, status=201)

    async def remove_wagon(self, request):
        coaster_id = request.match_info['coaster_id']
        wagon_id = request.match_info['wagon_id']
        try:
            if self.store.get_coaster(coaster_id) is None:
                return _error("Coaster not found", 404)
            removed = await self.propagator.remove_wagon(coaster_id, wagon_id)
        except StoreError as e:
            self.logger.error(f"Error removing wagon: {e}")
            return _error("Failed to remove wagon", 500)

        if not removed:
            return _error("Wagon not found", 404)

        self.logger.info(f"Removed wagon with ID: {wagon_id} from coaster: {coaster_id}")
        return web.json_response({"success": True, "message": "Wagon removed successfully"})

    async def start(self, host: str, port: int):
        """Start serving HTTP"""
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, host, port)
        await site.start()
        self.logger.info(f"API accessible at http://{host}:{port}/api")

    async def stop(self):
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            self.logger.info("HTTP server closed")
