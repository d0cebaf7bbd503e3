#
# Copyright 2025 Firmirror contributors
#
# SPDX-License-Identifier: LGPL-2.1-or-later
#
"""AppStream firmware components as published in LVFS metadata.

The same component template renders the per-firmware
``firmware.metainfo.xml`` fragment shipped inside each cabinet and the
``<components>`` document served to fwupd clients.
"""

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import List, Optional
from xml.sax.saxutils import escape

from jinja2 import DictLoader, Environment
from markupsafe import Markup

METADATA_ORIGIN = "firmirror"

COMPONENT_TEMPLATE = """{% macro component_xml(c, pad="") %}
{{ pad }}<component type="{{ c.type }}">
{{ pad }}  <id>{{ c.id }}</id>
{{ pad }}  <name>{{ c.name }}</name>
{% if c.name_variant_suffix %}
{{ pad }}  <name_variant_suffix>{{ c.name_variant_suffix }}</name_variant_suffix>
{% endif %}
{{ pad }}  <summary>{{ c.summary }}</summary>
{% if c.developer_name %}
{{ pad }}  <developer_name>{{ c.developer_name }}</developer_name>
{% endif %}
{{ pad }}  <description>{{ c.description|safe }}</description>
{% if c.provides %}
{{ pad }}  <provides>
{% for p in c.provides %}
{{ pad }}    <firmware type="{{ p.type }}">{{ p.value }}</firmware>
{% endfor %}
{{ pad }}  </provides>
{% endif %}
{% if c.url %}
{{ pad }}  <url type="{{ c.url.type }}">{{ c.url.value }}</url>
{% endif %}
{{ pad }}  <metadata_license>{{ c.metadata_license }}</metadata_license>
{{ pad }}  <project_license>{{ c.project_license }}</project_license>
{{ pad }}  <releases>
{% for r in c.releases %}
{{ pad }}    <release version="{{ r.version }}" date="{{ r.date }}"{% if r.urgency %} urgency="{{ r.urgency }}"{% endif %}{% if r.install_duration %} install_duration="{{ r.install_duration }}"{% endif %}>
{% if r.location %}
{{ pad }}      <location>{{ r.location }}</location>
{% endif %}
{% for cs in r.checksums %}
{{ pad }}      <checksum filename="{{ cs.filename }}" target="{{ cs.target }}"{% if cs.kind %} type="{{ cs.kind }}"{% endif %}>{{ cs.value }}</checksum>
{% endfor %}
{{ pad }}      <description>{{ r.description|safe }}</description>
{% if r.issues %}
{{ pad }}      <issues>
{% for issue in r.issues %}
{{ pad }}        <issue type="{{ issue.type }}">{{ issue.value }}</issue>
{% endfor %}
{{ pad }}      </issues>
{% endif %}
{{ pad }}    </release>
{% endfor %}
{{ pad }}  </releases>
{% if c.requires %}
{{ pad }}  <requires>
{% for req in c.requires %}
{{ pad }}    <{{ req.kind }}{% if req.compare %} compare="{{ req.compare }}"{% endif %}{% if req.version %} version="{{ req.version }}"{% endif %}>{{ req.value }}</{{ req.kind }}>
{% endfor %}
{{ pad }}  </requires>
{% endif %}
{% if c.custom %}
{{ pad }}  <custom>
{% for value in c.custom %}
{{ pad }}    <value key="{{ value.key }}">{{ value.value }}</value>
{% endfor %}
{{ pad }}  </custom>
{% endif %}
{% if c.keywords %}
{{ pad }}  <keywords>
{% for keyword in c.keywords %}
{{ pad }}    <keyword>{{ keyword }}</keyword>
{% endfor %}
{{ pad }}  </keywords>
{% endif %}
{% if c.categories %}
{{ pad }}  <categories>
{% for category in c.categories %}
{{ pad }}    <category>{{ category }}</category>
{% endfor %}
{{ pad }}  </categories>
{% endif %}
{{ pad }}</component>
{% endmacro %}
"""

METAINFO_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
{% from "component.xml" import component_xml %}
{{ component_xml(component) }}"""

METADATA_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
{% from "component.xml" import component_xml %}
<components origin="{{ origin }}">
{% for c in components %}
{{ component_xml(c, "  ") }}{% endfor %}
</components>
"""


@dataclass
class Checksum:
    filename: str
    target: str = "content"
    kind: str = ""
    value: str = ""


@dataclass
class Issue:
    type: str
    value: str


@dataclass
class Release:
    version: str
    date: str = ""
    urgency: str = ""
    install_duration: int = 0
    location: str = ""
    checksums: List[Checksum] = field(default_factory=list)
    description: str = ""
    issues: List[Issue] = field(default_factory=list)

    @property
    def primary_filename(self) -> Optional[str]:
        """Filename of the first checksum, the identity of the release"""
        for checksum in self.checksums:
            if checksum.filename:
                return checksum.filename
        return None


@dataclass
class Provide:
    value: str
    type: str = "flashed"


@dataclass
class Url:
    value: str
    type: str = "homepage"


@dataclass
class Requirement:
    kind: str
    value: str
    compare: str = ""
    version: str = ""


@dataclass
class Custom:
    key: str
    value: str


@dataclass
class Component:
    id: str
    name: str = ""
    summary: str = ""
    description: str = ""
    type: str = "firmware"
    name_variant_suffix: str = ""
    developer_name: str = ""
    provides: List[Provide] = field(default_factory=list)
    url: Optional[Url] = None
    metadata_license: str = ""
    project_license: str = ""
    releases: List[Release] = field(default_factory=list)
    requires: List[Requirement] = field(default_factory=list)
    custom: List[Custom] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)

    def get_custom(self, key: str) -> Optional[str]:
        for value in self.custom:
            if value.key == key:
                return value.value
        return None


@dataclass
class Components:
    components: List[Component] = field(default_factory=list)
    origin: str = METADATA_ORIGIN


# characters outside the XML 1.0 Char production
_INVALID_XML_CHARS = re.compile(
    "[^\u0009\u000a\u000d\u0020-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]"
)


def xml_chars(value):
    """Replaces characters XML 1.0 cannot carry with U+FFFD"""
    if not isinstance(value, str):
        return value
    cleaned = _INVALID_XML_CHARS.sub("\ufffd", value)
    if isinstance(value, Markup):
        return Markup(cleaned)
    return cleaned


def _environment():
    return Environment(
        finalize=xml_chars,
        loader=DictLoader(
            {
                "component.xml": COMPONENT_TEMPLATE,
                "metainfo.xml": METAINFO_TEMPLATE,
                "metadata.xml": METADATA_TEMPLATE,
            }
        ),
        autoescape=True,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


_ENV = _environment()


def render_component(component: Component) -> str:
    """Renders a single component as a firmware.metainfo.xml document"""
    return _ENV.get_template("metainfo.xml").render(component=component)


def render_components(components: Components) -> str:
    """Renders the metadata document in the order given"""
    return _ENV.get_template("metadata.xml").render(
        origin=components.origin, components=components.components
    )


def _text(elem, tag):
    child = elem.find(tag)
    if child is None or child.text is None:
        return ""
    return child.text.strip()


def _inner_xml(elem):
    if elem is None:
        return ""
    parts = [escape(elem.text or "")]
    for child in elem:
        parts.append(ET.tostring(child, encoding="unicode"))
    return "".join(parts).strip()


def _parse_release(elem):
    try:
        install_duration = int(elem.get("install_duration", "0"))
    except ValueError as e:
        raise ValueError(f"invalid install_duration: {e}") from e
    release = Release(
        version=elem.get("version", ""),
        date=elem.get("date", ""),
        urgency=elem.get("urgency", ""),
        install_duration=install_duration,
        location=_text(elem, "location"),
        description=_inner_xml(elem.find("description")),
    )
    for cs in elem.findall("checksum"):
        release.checksums.append(
            Checksum(
                filename=cs.get("filename", ""),
                target=cs.get("target", "content"),
                kind=cs.get("type", ""),
                value=(cs.text or "").strip(),
            )
        )
    for issue in elem.findall("issues/issue"):
        release.issues.append(Issue(issue.get("type", ""), (issue.text or "").strip()))
    return release


def parse_component(elem) -> Component:
    component_id = _text(elem, "id")
    if not component_id:
        raise ValueError("component without id")
    component = Component(
        id=component_id,
        type=elem.get("type", "firmware"),
        name=_text(elem, "name"),
        name_variant_suffix=_text(elem, "name_variant_suffix"),
        summary=_text(elem, "summary"),
        developer_name=_text(elem, "developer_name"),
        description=_inner_xml(elem.find("description")),
        metadata_license=_text(elem, "metadata_license"),
        project_license=_text(elem, "project_license"),
    )
    for fw in elem.findall("provides/firmware"):
        component.provides.append(
            Provide((fw.text or "").strip(), fw.get("type", "flashed"))
        )
    url = elem.find("url")
    if url is not None and url.text:
        component.url = Url(url.text.strip(), url.get("type", "homepage"))
    for release in elem.findall("releases/release"):
        component.releases.append(_parse_release(release))
    requires = elem.find("requires")
    if requires is not None:
        for req in requires:
            component.requires.append(
                Requirement(
                    kind=req.tag,
                    value=(req.text or "").strip(),
                    compare=req.get("compare", ""),
                    version=req.get("version", ""),
                )
            )
    for value in elem.findall("custom/value"):
        component.custom.append(Custom(value.get("key", ""), (value.text or "").strip()))
    component.keywords = [
        (k.text or "").strip() for k in elem.findall("keywords/keyword")
    ]
    component.categories = [
        (c.text or "").strip() for c in elem.findall("categories/category")
    ]
    return component


def parse_components(data) -> Components:
    """Parses a metadata document.

    Raises ET.ParseError for malformed XML and ValueError for a document
    that is not a components list.
    """
    root = ET.fromstring(data)
    if root.tag != "components":
        raise ValueError(f"unexpected root element <{root.tag}>")
    components = Components(origin=root.get("origin", METADATA_ORIGIN))
    for elem in root.findall("component"):
        components.components.append(parse_component(elem))
    return components
