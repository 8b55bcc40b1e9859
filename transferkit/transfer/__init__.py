"""
transferkit - Transfer Operations

Whole-payload data transfers and multipart file transfers built on the
transport layer.

Example:
    from transferkit.transfer import RequestOptions, plan_parts, put_multipart_file

    parts = checksum_parts(path, plan_parts(size, urls=part_urls))
    results = await put_multipart_file(executor, parts, path, RequestOptions())
"""

from .options import RequestOptions

from .data import (
    put_data,
    put_data_once,
    get_data,
    get_data_once,
    post_data,
    post_data_once,
    patch_data,
    patch_data_once,
    upload_stream,
    download,
)

from .multipart import (
    PartDescriptor,
    PartResult,
    plan_parts,
    checksum_parts,
    put_part,
    get_part,
    put_multipart_file,
    put_single_part_file,
    get_multipart_file,
    get_single_part_file,
)

__all__ = [
    # Options
    "RequestOptions",

    # Data
    "put_data",
    "put_data_once",
    "get_data",
    "get_data_once",
    "post_data",
    "post_data_once",
    "patch_data",
    "patch_data_once",
    "upload_stream",
    "download",

    # Multipart
    "PartDescriptor",
    "PartResult",
    "plan_parts",
    "checksum_parts",
    "put_part",
    "get_part",
    "put_multipart_file",
    "put_single_part_file",
    "get_multipart_file",
    "get_single_part_file",
]
