"""Health check server reporting monitor status to external checks."""
import logging
import threading
from flask import Flask, jsonify

logger = logging.getLogger(__name__)


class HealthServer:
    """Simple Flask-based server exposing monitor health."""

    def __init__(self, config, monitors):
        """Initialize the health server."""
        self.config = config
        self.monitors = monitors
        self.app = Flask(__name__)
        self.server_thread = None
        self.running = False

        # Register routes
        self._register_routes()

    def _register_routes(self):
        """Register Flask routes."""

        @self.app.route('/health', methods=['GET'])
        def health_check():
            """Report every monitor's state and retry count."""
            snapshots = [monitor.snapshot() for monitor in self.monitors]
            failing = [s["name"] for s in snapshots
                       if s["retry_attempt"] >= self.config.HEALTH_FAILURE_THRESHOLD]

            if failing:
                logger.warning("Health check failing for monitors: %s", ", ".join(failing))
                return jsonify({"status": "degraded", "failing": failing,
                                "monitors": snapshots}), 503
            return jsonify({"status": "ok", "monitors": snapshots}), 200

    def start(self):
        """Start the health server in a separate thread."""
        if self.running:
            logger.warning("Health server is already running")
            return

        if not self.config.HEALTH_ENABLED:
            logger.info("Health server is disabled by configuration")
            return

        def run_server():
            logger.info("Starting health server on %s:%s",
                        self.config.HEALTH_HOST, self.config.HEALTH_PORT)
            self.app.run(
                host=self.config.HEALTH_HOST,
                port=self.config.HEALTH_PORT,
                debug=False,  # Never run in debug mode for production
                use_reloader=False,  # Disable reloader to avoid duplicate processes
                threaded=True
            )

        self.server_thread = threading.Thread(target=run_server)
        # Make thread a daemon so it exits when main thread exits
        self.server_thread.daemon = True
        self.server_thread.start()
        self.running = True
        logger.info("Health server thread started")
