from pathlib import Path
from typing import Dict

import pytest

from htsopts.toy_data import make_toy_data


@pytest.fixture(scope="session")
def toy(tmp_path_factory: pytest.TempPathFactory) -> Dict[str, object]:
    return make_toy_data(outdir=tmp_path_factory.mktemp("toy"))


@pytest.fixture()
def toy_bam(toy: Dict[str, object]) -> Path:
    return Path(str(toy["bam"]))
