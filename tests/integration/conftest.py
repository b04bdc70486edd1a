from pathlib import Path

import pytest

FIXTURE_RST = Path("tests/fixtures/tab_stati_esteri_sample.rst").resolve()

COMUNI_CSV = """CODICE;DESCR_I;DESCR_D;CAP;SIGLA;COM_CODICE;DATA_FINE
H501;ROMA;ROM;00100;RM;058091;
A952;BOLZANO;BOZEN;39100;BZ;021008;
D704;FORLÌ;;47121;FC;040012;
BROKEN;LINE
H501;ROMA DUPLICATA;;00100;RM;058091;
Z404;STATI UNITI;;;;;
C001;VECCHIO COMUNE;;;XX;;31/12/2020
"""

SOURCES_YML = """data_sources:
  csv:
    comune:
      driver: csv
      source_type: file
      source: comuni.csv
      options:
        delimiter: ";"
        encoding: ISO-8859-1
      mapping:
        codice_catastale: {{column: CODICE}}
        denominazione: {{column: DESCR_I}}
        denominazione_de: {{column: DESCR_D}}
        cap: {{column: CAP}}
        sigla_provincia: {{column: SIGLA}}
        codice_istat: {{column: COM_CODICE}}
        valid_to: {{column: DATA_FINE, transform: date_dmy_slash}}
      defaults:
        item_type: comune
        stato: IT
        is_foreign_state: false
        fonte: CSV
    stato:
      driver: rst
      source_type: file
      source: "{stato_source}"
      options:
        encoding: UTF-8
      mapping:
        codice_catastale: {{column: CODAT}}
        denominazione: {{column: DENOMINAZIONEISTAT, fallback_columns: [denominazione]}}
        denominazione_en: {{column: DENOMINAZIONEISTAT_EN}}
        codice_iso3: {{column: CODISO3166_1_ALPHA3}}
        cittadinanza: {{column: CITTADINANZA, transform: bool_s_n}}
        nascita: {{column: NASCITA, transform: bool_s_n}}
        residenza: {{column: RESIDENZA, transform: bool_s_n}}
        tipo: {{column: TIPO}}
        valid_from: {{column: DATAINIZIOVALIDITA, transform: date_dmy_slash}}
        valid_to: {{column: DATAFINEVALIDITA, transform: date_dmy_slash}}
      defaults:
        item_type: stato
        is_foreign_state: true
        fonte: DB
"""

SYNC_YML = """table: geo_locations
chunk_size: 2
truncate_before_sync: true
http_timeout: 5
upsert:
  unique_by: [codice_catastale]
  update: [item_type, denominazione, denominazione_de, denominazione_en, sigla_provincia, stato, cap,
           codice_istat, codice_iso3, is_foreign_state, cittadinanza, nascita, residenza, tipo, fonte,
           valid_from, valid_to, updated_at]
"""


@pytest.fixture()
def make_config_dir(tmp_path: Path):
    def _make(stato_source: Path = FIXTURE_RST) -> Path:
        config_dir = tmp_path / "config"
        config_dir.mkdir(exist_ok=True)
        (config_dir / "comuni.csv").write_bytes(COMUNI_CSV.encode("latin-1"))
        (config_dir / "sources.yml").write_text(SOURCES_YML.format(stato_source=stato_source), encoding="utf-8")
        (config_dir / "sync.yml").write_text(SYNC_YML, encoding="utf-8")
        return config_dir

    return _make
