#
# Copyright 2025 Firmirror contributors
#
# SPDX-License-Identifier: LGPL-2.1-or-later
#
"""Immutable run configuration, built once at startup.

Values come from an optional INI file and the command line, the command
line winning::

    [firmirror]
    output_dir = /srv/firmware
    cache_dir = .firmirror_cache

    [sign]
    certificate = cert.pem
    private_key = key.pem

    [s3]
    enable = no
    bucket =
    prefix =
    region = us-east-1
    endpoint =

    [dell]
    enable = yes
    machines_id = 0C60, 0C61

    [hpe]
    enable = yes
    gens = gen10, gen11
"""

import configparser
from dataclasses import dataclass, field
from typing import Optional, Tuple

from firmirror.common import FirmirrorError

DEFAULT_CACHE_DIR = ".firmirror_cache"
HPE_GENS = ("gen10", "gen11", "gen12")


class ConfigError(FirmirrorError):
    pass


@dataclass(frozen=True)
class FirmirrorConfig:
    cache_dir: str = DEFAULT_CACHE_DIR
    certificate: str = ""
    private_key: str = ""

    @property
    def can_sign(self) -> bool:
        return bool(self.certificate and self.private_key)


@dataclass(frozen=True)
class S3Config:
    enable: bool = False
    bucket: str = ""
    prefix: str = ""
    region: str = "us-east-1"
    endpoint: str = ""


@dataclass(frozen=True)
class DellConfig:
    enable: bool = False
    machines_id: Tuple[str, ...] = ()


@dataclass(frozen=True)
class HPEConfig:
    enable: bool = False
    gens: Tuple[str, ...] = HPE_GENS


@dataclass(frozen=True)
class Settings:
    firmirror: FirmirrorConfig = field(default_factory=FirmirrorConfig)
    s3: S3Config = field(default_factory=S3Config)
    dell: DellConfig = field(default_factory=DellConfig)
    hpe: HPEConfig = field(default_factory=HPEConfig)
    output_dir: str = ""

    def validate(self):
        if self.s3.enable and not self.s3.bucket:
            raise ConfigError("An S3 bucket is required when S3 storage is enabled")
        if not self.s3.enable and not self.output_dir:
            raise ConfigError("Output directory is required when using local storage")
        if not self.dell.enable and not self.hpe.enable:
            raise ConfigError("No vendor enabled")
        for gen in self.hpe.gens:
            if gen not in HPE_GENS:
                raise ConfigError(
                    f"Unknown HPE generation {gen!r}, expected one of {', '.join(HPE_GENS)}"
                )
        return self


def split_list(values):
    """Flattens repeated and comma separated option values"""
    items = []
    for value in values or []:
        for item in value.split(","):
            item = item.strip()
            if item:
                items.append(item)
    return tuple(items)


def _pick(cli_value, parser, section, option, fallback):
    if cli_value not in (None, "", [], ()):
        return cli_value
    return parser.get(section, option, fallback=fallback)


def _pick_bool(cli_value, parser, section, option):
    if cli_value:
        return True
    try:
        return parser.getboolean(section, option, fallback=False)
    except ValueError as e:
        raise ConfigError(f"[{section}] {option}: {e}") from e


def read_config_file(path) -> configparser.ConfigParser:
    parser = configparser.ConfigParser()
    if path is None:
        return parser
    try:
        with open(path, encoding="utf-8") as f:
            parser.read_file(f)
    except (OSError, configparser.Error) as e:
        raise ConfigError(f"Cannot read configuration {path}: {e}") from e
    return parser


def settings_from_args(args, parser: Optional[configparser.ConfigParser] = None):
    """Builds the Settings from parsed command line arguments"""
    if parser is None:
        parser = read_config_file(getattr(args, "config", None))

    machines_id = split_list(args.dell_machines_id) or split_list(
        [parser.get("dell", "machines_id", fallback="")]
    )
    gens = (
        split_list(args.hpe_gens)
        or split_list([parser.get("hpe", "gens", fallback="")])
        or HPE_GENS
    )

    settings = Settings(
        firmirror=FirmirrorConfig(
            cache_dir=_pick(
                args.cache_dir, parser, "firmirror", "cache_dir", DEFAULT_CACHE_DIR
            ),
            certificate=_pick(args.sign_certificate, parser, "sign", "certificate", ""),
            private_key=_pick(args.sign_private_key, parser, "sign", "private_key", ""),
        ),
        s3=S3Config(
            enable=_pick_bool(args.s3_enable, parser, "s3", "enable"),
            bucket=_pick(args.s3_bucket, parser, "s3", "bucket", ""),
            prefix=_pick(args.s3_prefix, parser, "s3", "prefix", ""),
            region=_pick(args.s3_region, parser, "s3", "region", "us-east-1"),
            endpoint=_pick(args.s3_endpoint, parser, "s3", "endpoint", ""),
        ),
        dell=DellConfig(
            enable=_pick_bool(args.dell_enable, parser, "dell", "enable"),
            machines_id=machines_id,
        ),
        hpe=HPEConfig(
            enable=_pick_bool(args.hpe_enable, parser, "hpe", "enable"),
            gens=gens,
        ),
        output_dir=_pick(args.output_dir, parser, "firmirror", "output_dir", ""),
    )
    return settings.validate()
