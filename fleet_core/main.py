#!/usr/bin/env python3
"""
Main entry point for the fleet tracking system.
Builds every component from configuration and runs until a shutdown signal.
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

# Core components
from fleet_core.core.application import Application
from fleet_core.core.clock import Clock
from fleet_core.core.config import ApplicationConfig
from fleet_core.core.resource_manager import ResourceManager

# Services and server
from fleet_core.services.connectivity import ConnectivityMonitor
from fleet_core.services.eta_estimator import EtaEstimator
from fleet_core.services.motion_model import FleetSimulator
from fleet_core.services.offline_queue import OfflineQueue
from fleet_core.services.staleness_sweeper import StalenessSweeper
from fleet_core.services.store_writer import ResilientWriter
from fleet_core.api.web_server import WebServer

# Data layer
from fleet_core.data.repositories import FleetStore, InMemoryStore, SQLiteStore
from fleet_core.data.sources import StaticRouteSource
from fleet_core.data.validation import RouteValidationError

logger = logging.getLogger(__name__)


def build_store(config: ApplicationConfig) -> FleetStore:
    if config.store_backend == "sqlite":
        return SQLiteStore(config.db_path, config.timezone)
    return InMemoryStore()


class FleetTrackingSystem:
    """Main system coordinator that integrates all components"""

    def __init__(self, config: Optional[ApplicationConfig] = None):
        self.config = config or ApplicationConfig.from_env()
        self.app = Application()
        self.clock = Clock(self.config.timezone)
        self.resource_manager: Optional[ResourceManager] = None
        self.store: Optional[FleetStore] = None
        self.queue: Optional[OfflineQueue] = None
        self.connectivity: Optional[ConnectivityMonitor] = None
        self.simulator: Optional[FleetSimulator] = None
        self.sweeper: Optional[StalenessSweeper] = None
        self.web_server: Optional[WebServer] = None

    async def _load_network(self):
        """Register routes and vehicles from the input directory"""
        routes, registrations = await StaticRouteSource(self.config.in_dir).load()
        for route in routes:
            try:
                self.simulator.register_route(route)
            except RouteValidationError as e:
                logger.error(f"Skipping route: {e}")
        for registration in registrations:
            try:
                self.simulator.register_vehicle(
                    registration.vehicle_id,
                    registration.route_id,
                    base_speed_kmh=registration.base_speed_kmh,
                    start_stop_index=registration.start_stop_index,
                )
            except RouteValidationError as e:
                logger.error(f"Skipping vehicle: {e}")
        logger.info(f"Loaded {len(self.simulator.routes)} routes and {len(self.simulator.vehicles)} vehicles")

    async def setup(self):
        """Initialize and register all services"""
        logger.info("Setting up fleet tracking system...")
        config = self.config

        self.resource_manager = ResourceManager(config.request_timeout_seconds)

        self.store = build_store(config)
        await self.store.initialize()

        self.queue = OfflineQueue(
            self.clock,
            policy=config.offline_flush_policy,
            max_age_seconds=config.offline_item_max_age_seconds,
        )
        self.connectivity = ConnectivityMonitor(
            self.store,
            self.clock,
            check_interval_seconds=config.connectivity_check_interval_seconds,
            check_url=config.connectivity_check_url,
            resource_manager=self.resource_manager,
            event_loop=self.app.event_loop,
        )
        self.connectivity.on_restored(self.queue.flush)

        writer = ResilientWriter(self.store, self.queue, self.connectivity)
        eta_estimator = EtaEstimator(config, self.store, writer, self.clock)
        self.simulator = FleetSimulator(config, writer, eta_estimator, self.clock,
                                        event_loop=self.app.event_loop)
        self.sweeper = StalenessSweeper(config, self.store, self.clock,
                                        event_loop=self.app.event_loop)
        self.web_server = WebServer(
            config, self.store, self.simulator, eta_estimator,
            self.queue, self.connectivity, self.resource_manager,
        )

        await self._load_network()

        # Register services for lifecycle management; stopped in reverse order
        self.app.register_service("resource_manager", self.resource_manager)
        self.app.register_service("store", self.store)
        self.app.register_service("connectivity", self.connectivity)
        self.app.register_service("staleness_sweeper", self.sweeper)
        self.app.register_service("simulator", self.simulator)
        self.app.register_service("web_server", self.web_server)
        logger.info("All services initialized and registered")

    def _setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown"""
        def shutdown_handler(signum, frame):
            logger.info(f"Received signal {signum}, shutting down...")
            self.app.event_loop.shutdown_event.set()

        signal.signal(signal.SIGINT, shutdown_handler)
        signal.signal(signal.SIGTERM, shutdown_handler)

    async def start(self):
        """Start the system"""
        logger.info("Starting fleet tracking system...")
        self._setup_signal_handlers()
        await self.setup()
        await self.app.start()
        await self.app.event_loop.shutdown_event.wait()

    async def stop(self):
        """Stop the system gracefully"""
        logger.info("Stopping fleet tracking system...")
        await self.app.stop()
        logger.info("System stopped gracefully")


async def main():
    """Main entry point"""
    try:
        config = ApplicationConfig.from_env()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    logging.getLogger().setLevel(config.log_level.upper())
    system = FleetTrackingSystem(config)

    try:
        await system.start()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        sys.exit(1)
    finally:
        await system.stop()


def run():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown complete")
        sys.exit(0)


if __name__ == "__main__":
    run()
