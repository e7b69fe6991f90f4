from __future__ import annotations

from dataclasses import dataclass

from ..app import AudioDedupApp
from ..config import Settings
from .output import error, ok as ok_line, warning


@dataclass(slots=True)
class DoctorReport:
    ok: bool
    checks: list[str]


def run(settings: Settings) -> DoctorReport:
    checks: list[str] = []
    ok = True

    app = AudioDedupApp.create(settings)
    try:
        checks.append(ok_line("Store", str(settings.store.path)))

        roots = [root.resolve() for root in settings.library.roots]
        missing = [str(root) for root in roots if not root.exists()]
        if not roots:
            checks.append(warning("Library roots", "none configured; `index` will find nothing"))
        elif missing:
            ok = False
            checks.append(error("Library roots", f"missing: {', '.join(missing)}"))
        else:
            checks.append(ok_line("Library roots", f"{len(roots)} root(s)"))

        backend = settings.fingerprint.backend
        if app.fingerprints.available():
            checks.append(ok_line("Fingerprint backend", backend))
        else:
            hint = (
                f"{settings.fingerprint.fpcalc_path} not on PATH"
                if backend == "fpcalc"
                else "libchromaprint not found"
            )
            checks.append(warning("Fingerprint backend", f"{backend}: {hint}"))

        total = app.store.count()
        fingerprinted = app.store.fingerprinted_count()
        if total == 0:
            checks.append(warning("Library", "no files indexed (run `audio-dedup index`)"))
        else:
            strategy = app.engine.select_strategy(app.store.get_all_files()).value
            checks.append(
                ok_line(
                    "Library",
                    f"{total} files, {fingerprinted} fingerprinted, {strategy} strategy",
                )
            )

        matching = settings.matching
        checks.append(
            ok_line(
                "Matching",
                f"{matching.name}, min {matching.minimum_fields_to_match}/4 fields",
            )
        )
    finally:
        app.close()

    return DoctorReport(ok=ok, checks=checks)
