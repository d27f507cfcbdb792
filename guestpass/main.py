"""
Flask application wiring for the guest pass service.
"""

import argparse
from pathlib import Path
from typing import Callable, Optional

from flask import Flask, jsonify

from config_manager import ConfigManager
from guestpass.app_data.factory import create_app_data_module
from guestpass.data_cache.factory import create_data_cache_module
from guestpass.logging_config import setup_logging
from guestpass.quota.factory import create_quota_module
from guestpass.remote import DocumentStore, JsonFileDocumentStore


def create_app(
    config_manager: Optional[ConfigManager] = None,
    document_store: Optional[DocumentStore] = None,
    cache_clock: Optional[Callable[[], int]] = None,
    clock: Optional[Callable] = None,
) -> Flask:
    """
    Build the Flask app with cache, fetch orchestrator and quota modules.

    Args:
        config_manager: Configuration source (a fresh ConfigManager if None)
        document_store: Remote store; a JSON file store under data_dir if None
        cache_clock: ms epoch clock for the cache and orchestrator
        clock: UTC datetime clock for the quota engine

    The modules are exposed on ``app.extensions["guestpass"]``.
    """
    config_manager = config_manager or ConfigManager()
    cache_config = config_manager.get_cache_config()
    fetch_config = config_manager.get_fetch_config()
    quota_config = config_manager.get_quota_defaults_config()
    paths_config = config_manager.get_paths_config()

    data_dir = Path(paths_config.data_dir)
    if document_store is None:
        data_dir.mkdir(parents=True, exist_ok=True)
        document_store = JsonFileDocumentStore(data_dir / paths_config.document_store_file)

    storage_file = Path(cache_config.storage_file) if cache_config.storage_file else None
    cache_module = create_data_cache_module(
        storage_file=storage_file,
        prefix=cache_config.prefix,
        version=cache_config.version,
        quota_bytes=cache_config.quota_bytes,
        ttl_hours=cache_config.ttl_hours,
        clock=cache_clock,
    )

    app_data_module = create_app_data_module(
        document_store=document_store,
        cache=cache_module["service"],
        residents_limit=fetch_config.residents_limit,
        units_page_size=fetch_config.units_page_size,
        communities_limit=fetch_config.communities_limit,
        clock=cache_clock,
    )

    quota_module = create_quota_module(
        document_store=document_store,
        app_data=app_data_module["store"],
        default_monthly_limit=quota_config.monthly_limit,
        default_validity_hours=quota_config.validity_duration_hours,
        family_roles=quota_config.family_roles,
        clock=clock,
    )

    app = Flask(__name__)
    app.register_blueprint(quota_module["blueprint"])
    app.extensions["guestpass"] = {
        "document_store": document_store,
        "cache": cache_module["service"],
        "app_data": app_data_module["store"],
        "quota_manager": quota_module["manager"],
        "quota_reports": quota_module["reports"],
    }

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"})

    return app


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(description="Guest pass quota service")
    parser.add_argument("--port", type=int, help="Port to run the server on")
    parser.add_argument("--host", type=str, help="Host to bind the server to")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    args = parser.parse_args()

    config_manager = ConfigManager()
    app_config = config_manager.get_app_config()

    # Override configuration with command line arguments
    if args.port:
        app_config.port = args.port
    if args.host:
        app_config.host = args.host
    if args.debug:
        app_config.debug = args.debug

    setup_logging(app_config.debug)
    app = create_app(config_manager)

    print(f"📋 Configuration loaded:")
    print(f"   - Default monthly limit: {config_manager.get_quota_defaults_config().monthly_limit}")
    print(f"   - Cache version: {config_manager.get_cache_config().version}")
    print(f"   - Server: {app_config.host}:{app_config.port}")
    app.run(
        host=app_config.host,
        port=app_config.port,
        debug=app_config.debug
    )


if __name__ == "__main__":
    main()
