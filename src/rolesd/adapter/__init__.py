"""Writers that turn discovery batches into files Prometheus can watch."""

from rolesd.adapter.file_sd import FileSDWriter, output_file_for

__all__ = ["FileSDWriter", "output_file_for"]
