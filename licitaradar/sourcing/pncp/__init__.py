from licitaradar.sourcing.pncp.client import Attachment, PncpApiClient
from licitaradar.sourcing.pncp.parser import parse_record

__all__ = ["Attachment", "PncpApiClient", "parse_record"]
