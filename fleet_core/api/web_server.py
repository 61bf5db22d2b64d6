"""
HTTP API for passenger, driver and admin front ends.
"""

import logging
from typing import Optional

from aiohttp import web

from ..core.config import ApplicationConfig
from ..core.resource_manager import ResourceManager
from ..data.models.vehicle import PositionSample, vehicle_summary
from ..data.repositories.base import FleetStore, StoreUnavailableError
from ..services.connectivity import ConnectivityMonitor
from ..services.eta_estimator import EtaEstimator
from ..services.motion_model import FleetSimulator
from ..services.offline_queue import OfflineQueue
from ..shared.geo import format_eta

logger = logging.getLogger(__name__)


class WebServer:
    """aiohttp server exposing vehicles, ETAs and simulation control"""
    CORS_HEADERS = {
        'Access-Control-Allow-Origin': '*',
        'Access-Control-Allow-Methods': 'GET, POST, OPTIONS',
        'Access-Control-Allow-Headers': 'Content-Type',
        'Access-Control-Max-Age': '3600',
    }

    def __init__(self, config: ApplicationConfig, store: FleetStore,
                 simulator: FleetSimulator, eta_estimator: EtaEstimator,
                 queue: OfflineQueue, connectivity: ConnectivityMonitor,
                 resource_manager: Optional[ResourceManager] = None):
        self.config = config
        self.store = store
        self.simulator = simulator
        self.eta_estimator = eta_estimator
        self.queue = queue
        self.connectivity = connectivity
        self.resource_manager = resource_manager

        self.app: Optional[web.Application] = None
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

    def create_app(self) -> web.Application:
        """Create and configure the web application"""
        app = web.Application(middlewares=[self._cors_middleware])
        app.router.add_get('/vehicles', self._handle_vehicles)
        app.router.add_post('/vehicles/{vehicle_id}/position', self._handle_position_report)
        app.router.add_post('/vehicles/{vehicle_id}/stop', self._handle_vehicle_stop)
        app.router.add_get('/stops/{stop_id}/etas', self._handle_stop_etas)
        app.router.add_post('/simulation/start', self._handle_simulation_start)
        app.router.add_post('/simulation/stop', self._handle_simulation_stop)
        app.router.add_get('/simulation/status', self._handle_simulation_status)
        app.router.add_get('/health', self._handle_health)
        app.router.add_route('OPTIONS', '/{tail:.*}', self._handle_options)
        return app

    @web.middleware
    async def _cors_middleware(self, request: web.Request, handler):
        try:
            response = await handler(request)
        except StoreUnavailableError as e:
            logger.warning(f"{request.method} {request.path}: store unavailable: {e}")
            response = web.json_response({"success": False, "error": "store unavailable"}, status=503)
        response.headers.update(self.CORS_HEADERS)
        return response

    async def _handle_vehicles(self, request: web.Request) -> web.Response:
        """GET /vehicles - Active vehicles, most recently updated first"""
        route_id = request.query.get('route_id')
        docs = await self.store.list_vehicles(active_only=True, route_id=route_id)
        docs.sort(key=lambda d: d.get("last_report_at") or self.simulator.clock.now(), reverse=True)
        vehicles = [vehicle_summary(doc["id"], doc) for doc in docs]
        return web.json_response({
            "success": True,
            "count": len(vehicles),
            "data": vehicles,
            "timestamp": self.simulator.clock.now().isoformat(),
        })

    async def _handle_stop_etas(self, request: web.Request) -> web.Response:
        """GET /stops/{stop_id}/etas - Ranked ETA list for a stop"""
        stop_id = request.match_info['stop_id']
        try:
            limit = int(request.query.get('limit', 5))
        except ValueError:
            return web.json_response({"success": False, "error": "limit must be an integer"}, status=400)

        records = await self.eta_estimator.ranked_etas_for_stop(stop_id, limit=limit)
        now = self.simulator.clock.now()
        data = []
        for record in records:
            entry = record.to_dict()
            entry["display"] = format_eta(record.estimated_arrival, now)
            data.append(entry)
        return web.json_response({
            "success": True,
            "stop_id": stop_id,
            "count": len(data),
            "data": data,
            "timestamp": now.isoformat(),
        })

    async def _handle_position_report(self, request: web.Request) -> web.Response:
        """POST /vehicles/{vehicle_id}/position - Position from a driver device"""
        vehicle_id = request.match_info['vehicle_id']
        try:
            body = await request.json()
            sample = PositionSample(
                vehicle_id=vehicle_id,
                latitude=float(body['latitude']),
                longitude=float(body['longitude']),
                speed_kmh=max(0.0, float(body.get('speed', 0.0))),
                timestamp=self.simulator.clock.now(),
            )
        except (ValueError, KeyError, TypeError) as e:
            return web.json_response({"success": False, "error": f"invalid report: {e}"}, status=400)
        if not -90 <= sample.latitude <= 90 or not -180 <= sample.longitude <= 180:
            return web.json_response({"success": False, "error": "coordinate out of range"}, status=400)

        try:
            vehicle = await self.simulator.report_position(sample, derive_speed='speed' not in body)
        except KeyError:
            return web.json_response({"success": False, "error": f"unknown vehicle {vehicle_id}"}, status=404)
        return web.json_response({
            "success": True,
            "data": vehicle_summary(vehicle.id, vehicle.to_document(self.simulator.routes.get(vehicle.route_id))),
            "queued": len(self.queue.pending_for(vehicle_id)),
        })

    async def _handle_vehicle_stop(self, request: web.Request) -> web.Response:
        """POST /vehicles/{vehicle_id}/stop - Driver stops sharing location"""
        vehicle_id = request.match_info['vehicle_id']
        try:
            await self.simulator.retire_vehicle(vehicle_id)
        except KeyError:
            return web.json_response({"success": False, "error": f"unknown vehicle {vehicle_id}"}, status=404)
        return web.json_response({"success": True, "vehicle_id": vehicle_id})

    async def _handle_simulation_start(self, request: web.Request) -> web.Response:
        await self.simulator.start()
        return web.json_response(self.simulator.status())

    async def _handle_simulation_stop(self, request: web.Request) -> web.Response:
        await self.simulator.stop()
        return web.json_response(self.simulator.status())

    async def _handle_simulation_status(self, request: web.Request) -> web.Response:
        return web.json_response(self.simulator.status())

    async def _handle_health(self, request: web.Request) -> web.Response:
        health = {
            "status": "healthy" if self.connectivity.is_online else "degraded",
            "store_online": self.connectivity.is_online,
            "offline_queue": self.queue.get_stats(),
            "simulation": self.simulator.status(),
        }
        if self.resource_manager is not None:
            health["resources"] = self.resource_manager.usage_snapshot()
        return web.json_response(health)

    async def _handle_options(self, request: web.Request) -> web.Response:
        """Handle OPTIONS preflight requests"""
        return web.Response(status=204)

    async def start(self) -> None:
        host, port = self.config.http_host, self.config.http_port
        logger.info(f"Starting web server on {host}:{port}")
        self.app = self.create_app()
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, host, port)
        await self.site.start()
        logger.info(f"Web server started on {host}:{port}")

    async def stop(self) -> None:
        """Stop the web server gracefully"""
        logger.info("Stopping web server...")
        if self.site:
            await self.site.stop()
        if self.runner:
            await self.runner.cleanup()
        logger.info("Web server stopped")
