"""Pure rendering functions: structured data -> HTML strings.

All renderers follow the same pattern:
  - Input: occurrences or dataclasses built from them
  - Output: str (a complete HTML document)
  - No side effects; the labels handler writes the result to disk

Public API:
  - labels: Label, build_label, label_warning, partition_labels,
    build_labels_html

Adding a renderer
-----------------
1. Create ``renderers/{name}.py`` with a build function that calls
   ``render_template("{name}.html.j2", ...)``.
2. Create the Jinja2 template in ``templates/{name}.html.j2``.
3. Add tests that call the build function with sample data and assert the
   returned HTML contains the expected content.
"""

from __future__ import annotations

from typing import Any

import jinja2

# Templates ship inside the package. Undefined names raise.
_jinja_env = jinja2.Environment(
    loader=jinja2.PackageLoader("bee_atlas", "templates"),
    autoescape=jinja2.select_autoescape(["html", "j2"]),
    undefined=jinja2.StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
)


def render_template(template_name: str, **kwargs: Any) -> str:
    """Render a Jinja2 template by name."""
    return _jinja_env.get_template(template_name).render(**kwargs)
