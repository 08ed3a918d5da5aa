"""Full-page preview and export helpers for rendered artifacts."""

from __future__ import annotations

from urllib.parse import quote_plus

from core.artifacts.models import Artifact, ArtifactPart

PREVIEW_MAX_WIDTH_PX = 1350

_HEAD_LINKS = (
    "https://cdn.jsdelivr.net/npm/bootstrap@5.3.0/dist/css/bootstrap.min.css",
    "https://cdnjs.cloudflare.com/ajax/libs/font-awesome/6.4.0/css/all.min.css",
    "https://cdn.jsdelivr.net/npm/slick-carousel@1.8.1/slick/slick.css",
    "https://cdn.jsdelivr.net/npm/slick-carousel@1.8.1/slick/slick-theme.css",
)
_BODY_SCRIPTS = (
    "https://code.jquery.com/jquery-3.6.0.min.js",
    "https://cdn.jsdelivr.net/npm/bootstrap@5.3.0/dist/js/bootstrap.bundle.min.js",
    "https://cdn.jsdelivr.net/npm/slick-carousel@1.8.1/slick/slick.min.js",
)


def google_font_url(typography: str) -> str:
    family = quote_plus(typography.strip(), safe="")
    return (
        f"https://fonts.googleapis.com/css2?family={family}"
        ":wght@300;400;500;600;700;800&display=swap"
    )


def build_preview_document(artifact: Artifact, rendered_markup: str, typography: str) -> str:
    """Wrap rendered markup with the artifact's style/script into a full page."""

    links = "\n".join(f'  <link href="{href}" rel="stylesheet">' for href in _HEAD_LINKS)
    scripts = "\n".join(f'  <script src="{src}"></script>' for src in _BODY_SCRIPTS)
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
{links}
  <link href="{google_font_url(typography)}" rel="stylesheet">
  <style>
    body {{ padding: 40px; background-color: #f8fafc; display: flex; justify-content: center; margin: 0; }}
    .preview-container {{ width: 100%; max-width: {PREVIEW_MAX_WIDTH_PX}px; font-family: '{typography}', sans-serif; }}
    .container {{ margin-right: auto; margin-left: auto; padding-left: 15px; padding-right: 15px; max-width: {PREVIEW_MAX_WIDTH_PX}px; }}
    @media (max-width: 768px) {{
      body {{ padding: 10px; }}
      .preview-container {{ max-width: 100%; }}
      .container {{ max-width: 100%; }}
    }}
  </style>
  {artifact.style}
</head>
<body>
  <div class="preview-container">{rendered_markup}</div>
{scripts}
  {artifact.script}
</body>
</html>"""


def export_part(
    artifact: Artifact, part: ArtifactPart, rendered_markup: str, typography: str
) -> str:
    """Return copy-ready code for one artifact part."""

    if part == "markup":
        return rendered_markup
    if part == "script":
        return artifact.script
    if part == "style":
        rule = (
            f"  .section-wrapper {{ font-family: '{typography}', sans-serif; "
            f"max-width: {PREVIEW_MAX_WIDTH_PX}px; margin: 0 auto; }}\n</style>"
        )
        return artifact.style.replace("</style>", rule, 1)
    raise ValueError(f"Unsupported artifact part: {part}")
