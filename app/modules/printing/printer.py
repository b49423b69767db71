"""
Salida a impresora por directorio de spool

Cada impresora tiene su carpeta dentro de PRINTER_SPOOL_DIR; el agente de
impresión del local toma los archivos .txt de esa carpeta y los envía al
dispositivo.
"""
import logging
import os
import re
from uuid import uuid4

from app.common.timeutils import utcnow
from app.core.config import settings

logger = logging.getLogger(__name__)


class PrinterError(Exception):
    """No se pudo entregar el trabajo de impresión."""


class SpoolPrinter:

    def __init__(self, printer_name: str, spool_dir: str = None):
        self.printer_name = printer_name
        self.spool_dir = spool_dir or settings.PRINTER_SPOOL_DIR

    @property
    def queue_path(self) -> str:
        safe_name = re.sub(r"[^A-Za-z0-9_.-]+", "_", self.printer_name).strip("_") or "default"
        return os.path.join(self.spool_dir, safe_name)

    def print_text(self, content: str, job_name: str = "job") -> str:
        """
        Encolar un documento de texto

        El archivo se escribe con extensión temporal y se renombra al final,
        así el agente nunca levanta un trabajo a medio escribir.

        Returns:
            Ruta del archivo encolado
        """
        tmp_path = None
        try:
            os.makedirs(self.queue_path, exist_ok=True)
            filename = f"{utcnow():%Y%m%d%H%M%S}-{job_name}-{uuid4().hex[:8]}"
            tmp_path = os.path.join(self.queue_path, filename + ".part")
            final_path = os.path.join(self.queue_path, filename + ".txt")

            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_path, final_path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    logger.warning(f"No se pudo borrar el trabajo parcial {tmp_path}")
            raise PrinterError(f"No se pudo encolar en {self.printer_name}: {e}") from e

        logger.info(f"Trabajo {job_name} enviado a {self.printer_name}")
        return final_path
