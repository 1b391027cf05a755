"""
Process Config Renderer

Turns the membership view and process details into the managed service's
properties file and the ``myid`` identity file.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from ..config.settings import ProcessSettings
from ..coordination.instance_config import IntConfigs
from ..coordination.membership import ServerType, UsState
from ..coordination.properties import dump_properties
from .details import Details

logger = logging.getLogger(__name__)

ID_FILE_NAME = "myid"


class ProcessConfigRenderer:
    """Renders and writes the managed service's configuration"""

    def __init__(self, settings: Optional[ProcessSettings] = None):
        self.settings = settings or ProcessSettings()

    def build_properties(self, state: UsState, details: Details) -> Dict[str, str]:
        config = state.config
        properties = dict(details.properties)
        properties["clientPort"] = str(config.get_int(IntConfigs.CLIENT_PORT))

        port_spec = f":{config.get_int(IntConfigs.CONNECT_PORT)}:{config.get_int(IntConfigs.ELECTION_PORT)}"
        for spec in state.server_list:
            properties[f"server.{spec.server_id}"] = f"{spec.hostname}{port_spec}{spec.server_type.config_suffix}"

        if state.us is not None and state.us.server_type is ServerType.OBSERVER:
            properties["peerType"] = "observer"

        return properties

    def render(self, state: UsState, details: Details, now: Optional[datetime] = None) -> str:
        """Render the properties text; only the timestamp comment varies between calls."""
        now = now or datetime.now()
        header = f"Auto-generated by quorum-agent - {now.isoformat(timespec='seconds')}"
        return dump_properties(self.build_properties(state, details), comments=[header])

    def config_file(self, details: Details) -> Optional[Path]:
        if details.config_directory is None:
            return None
        return details.config_directory / self.settings.config_file_name

    def write_id_file(self, state: UsState, details: Details):
        id_file = details.data_directory / ID_FILE_NAME
        if state.us is not None:
            id_file.parent.mkdir(parents=True, exist_ok=True)
            id_file.write_text(f"{state.us.server_id}\n")
            return

        logger.info("Starting in standalone mode")
        try:
            id_file.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Could not delete ID file {id_file}: {e}")

    def prepare(self, state: UsState, details: Details, now: Optional[datetime] = None) -> Optional[Path]:
        """Write the identity file and the rendered config; None when details are invalid."""
        if not details.is_valid():
            logger.warning(
                "Process details are incomplete (install, config, data and log directories are all required); "
                "skipping config rendering"
            )
            return None

        details.data_directory.mkdir(parents=True, exist_ok=True)
        self.write_id_file(state, details)

        config_file = self.config_file(details)
        config_file.parent.mkdir(parents=True, exist_ok=True)
        config_file.write_text(self.render(state, details, now))

        logger.info(f"Wrote process config {config_file}")
        return config_file
