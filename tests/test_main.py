import numpy as np

from counter_scan import main
from counter_scan.pipeline.models import Frame, RecognizedText


def test_missing_source_exits_with_setup_error(monkeypatch, fake_recognizer, tmp_path, capsys):
    monkeypatch.setattr(main, "EasyOcrRecognizer", fake_recognizer)

    code = main.run(main.parse_args(["--source", str(tmp_path / "nope.mp4"), "--timeout", "0"]))

    assert code == 2
    assert "Could not open video source" in capsys.readouterr().out


def test_source_failing_mid_scan_exits_with_setup_error(monkeypatch, fake_recognizer, capsys):
    def broken_source(source, stride=1, max_frames=None):
        def frames():
            yield Frame(seq=0, pixels=np.zeros((30, 40, 4), dtype=np.uint8))
            raise OSError("camera unplugged")

        return frames()

    monkeypatch.setattr(main, "EasyOcrRecognizer", lambda: fake_recognizer([RecognizedText("", 0.0)]))
    monkeypatch.setattr(main, "iter_frames", broken_source)
    monkeypatch.setattr(main, "FEEDER_POLL_S", 0.01)

    code = main.run(main.parse_args(["--source", "0", "--timeout", "0"]))

    assert code == 2
    assert "camera unplugged" in capsys.readouterr().out


def test_reading_from_source_exits_zero(monkeypatch, fake_recognizer, capsys):
    def still_frames(source, stride=1, max_frames=None):
        return iter([Frame(seq=i, pixels=np.zeros((30, 40, 4), dtype=np.uint8)) for i in range(3)])

    monkeypatch.setattr(main, "EasyOcrRecognizer", lambda: fake_recognizer([RecognizedText("963373", 88.0)]))
    monkeypatch.setattr(main, "iter_frames", still_frames)

    code = main.run(main.parse_args(["--source", "clip.mp4", "--timeout", "5"]))

    assert code == 0
    assert "Reading: 963373" in capsys.readouterr().out
