from pathlib import Path

from streamlit.testing.v1 import AppTest

APP = str(Path(__file__).resolve().parent.parent / "app.py")


def test_app_renders_controls():
    at = AppTest.from_file(APP, default_timeout=30).run()
    assert not at.exception
    assert at.title[0].value == "Synthetic Trial Data Generator"
    assert at.sidebar.text_input[0].value == "XYZ123"


def test_generate_dataset():
    at = AppTest.from_file(APP, default_timeout=60).run()
    at.sidebar.slider[0].set_value(50)
    at.button[0].click().run()

    assert not at.exception
    assert at.success[0].value == "Generated."
    assert at.info[0].value.startswith("Validation passed")
