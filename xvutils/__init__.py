"""Teaching-OS user tools and shell, a file-system image builder, a page-table model and an allocator."""

__version__ = "0.1.0"