import json

import numpy as np
from PIL import Image

import fill_template
from wplace_fill.template import Template


def test_tile_command_writes_template_and_previews(tmp_path, capsys):
    src = tmp_path / "heart.png"
    img = np.zeros((3, 4, 4), dtype=np.uint8)
    img[0, 0] = (0, 0, 0, 255)
    img[1, 1:3] = (237, 28, 36, 255)
    Image.fromarray(img).save(src)

    out = tmp_path / "heart.json"
    rc = fill_template.main(
        [
            "tile",
            str(src),
            "--coords", "1", "2", "998", "0",
            "--out", str(out),
            "--previews", str(tmp_path / "tiles"),
        ]
    )
    assert rc == 0

    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["name"] == "heart"
    assert data["pixelCount"] == 3
    assert sorted(data["tiles"]) == ["0001,0002,998,000", "0002,0002,000,000"]
    assert sorted(p.name for p in (tmp_path / "tiles").iterdir()) == [
        "0001_0002_998_000.png",
        "0002_0002_000_000.png",
    ]

    template = Template.load_json(out)
    assert fill_template.colour_usage(template) == [
        ("#ed1c24", "Red", 2),
        ("#000000", "Black", 1),
    ]
    assert "Colours used:" in capsys.readouterr().out


def test_tile_command_reports_bad_coords(tmp_path, capsys):
    src = tmp_path / "dot.png"
    Image.fromarray(np.full((1, 1, 4), 255, dtype=np.uint8)).save(src)
    rc = fill_template.main(["tile", str(src), "--coords", "0", "0", "1000", "0"])
    assert rc == 2
    assert "pixel offset" in capsys.readouterr().err


def test_run_command_rejects_missing_template(tmp_path, capsys):
    rc = fill_template.main(["run", str(tmp_path / "missing.json")])
    assert rc == 2
    assert "cannot read template" in capsys.readouterr().err
