"""Tags seeded into fresh stores."""

DEFAULT_TAGS: tuple[tuple[str, str], ...] = (
    ("flat_tires", "Flat tires"),
    ("rusted", "Rusted"),
    ("missing_parts", "Missing parts"),
    ("blocking_sidewalk", "Blocking sidewalk"),
    ("damaged_frame", "Damaged frame"),
    ("abandoned_long_time", "Abandoned for long time"),
    ("no_chain", "No chain"),
    ("wheel_missing", "Missing wheel"),
    ("no_seat", "No seat"),
    ("other_visibility_issue", "Other visibility issue"),
)
