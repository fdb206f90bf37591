from __future__ import annotations

from pathlib import Path

import pytest

from apurador.config import ScannerConfig
from apurador.models.source import Lane
from apurador.services.classifier import analyze, classify, infer_path_info
from tests.conftest import CNPJ, SPED_CONTENT

KEYWORDS = ("empresa", "company", "cnpj")


class TestInferPathInfo:
    def test_company_year_month(self):
        info = infer_path_info(Path("/r/empresa/ACME/2025/03/a.txt"), Path("/r"), KEYWORDS)
        assert (info.company_id, info.year, info.month) == ("ACME", 2025, 3)

    def test_keyword_is_substring_and_case_insensitive(self):
        info = infer_path_info(Path("/r/Empresas/ACME/a.txt"), Path("/r"), KEYWORDS)
        assert info.company_id == "ACME"

    def test_month_before_year_is_ignored(self):
        info = infer_path_info(Path("/r/03/2025/a.txt"), Path("/r"), KEYWORDS)
        assert info.year == 2025
        assert info.month is None

    def test_month_without_leading_zero(self):
        info = infer_path_info(Path("/r/2024/12/a.txt"), Path("/r"), KEYWORDS)
        assert (info.year, info.month) == (2024, 12)

    def test_nothing_inferred(self):
        info = infer_path_info(Path("/r/misc/a.txt"), Path("/r"), KEYWORDS)
        assert (info.company_id, info.year, info.month) == (None, None, None)

    def test_segments_above_root_are_ignored(self):
        info = infer_path_info(Path("/home/company/data/2025/01/a.txt"), Path("/home/company/data"), KEYWORDS)
        assert info.company_id is None
        assert (info.year, info.month) == (2025, 1)

    def test_year_hints_restrict_years(self):
        path = Path("/r/2019/05/a.txt")
        assert infer_path_info(path, Path("/r"), KEYWORDS, ("2024", "2025")).year is None
        assert infer_path_info(path, Path("/r"), KEYWORDS, ("2019",)).year == 2019

    def test_company_segment_is_not_read_as_keyword(self):
        info = infer_path_info(Path("/r/empresas/empresa_acme/2025/03/a.txt"), Path("/r"), KEYWORDS)
        assert (info.company_id, info.year, info.month) == ("empresa_acme", 2025, 3)

    def test_company_segment_is_not_read_as_year(self):
        info = infer_path_info(Path("/r/cnpj/2030/2025/03/a.txt"), Path("/r"), KEYWORDS)
        assert (info.company_id, info.year, info.month) == ("2030", 2025, 3)

    def test_keyword_as_last_segment(self):
        info = infer_path_info(Path("/r/empresa"), Path("/r"), KEYWORDS)
        assert info.company_id is None


class TestClassify:
    @pytest.mark.parametrize("name", ["PROTEGE goias.pdf", "guia pratico.pdf", "Manual.pdf", "auditoria_2025.pdf"])
    def test_protege_schedule(self, name):
        assert classify(name, ".pdf", b"") is Lane.PROTEGE_SCHEDULE

    def test_schedule_keyword_requires_pdf(self):
        assert classify("protege.txt", ".txt", b"texto") is Lane.GENERIC

    @pytest.mark.parametrize("marker", [b"|C100|", b"|M100|", b"|M200|", b"|0000|", b"|9999|"])
    def test_sped_markers(self, marker):
        assert classify("arquivo.txt", ".txt", b"abc" + marker + b"def") is Lane.SPED

    def test_pdf_without_keyword_uses_content(self):
        assert classify("relatorio.pdf", ".pdf", b"%PDF") is Lane.GENERIC

    def test_generic(self):
        assert classify("notas.txt", ".txt", b"nada aqui") is Lane.GENERIC


class TestAnalyze:
    def test_sped_file(self, fiscal_tree):
        path = fiscal_tree / "empresa" / CNPJ / "2025" / "03" / "efd_icms_ipi.txt"
        source = analyze(path, ScannerConfig(), fiscal_tree)
        assert source is not None
        assert source.lane is Lane.SPED
        assert source.company_id == CNPJ
        assert source.period == "202503"
        assert source.extension == ".txt"
        assert source.path.is_absolute()

    def test_unsupported_extension(self, fiscal_tree):
        path = fiscal_tree / "empresa" / CNPJ / "2025" / "03" / "planilha.xlsx"
        assert analyze(path, ScannerConfig(), fiscal_tree) is None

    def test_oversized(self, fiscal_tree):
        path = fiscal_tree / "empresa" / CNPJ / "2025" / "03" / "efd_icms_ipi.txt"
        assert analyze(path, ScannerConfig(max_file_size_bytes=10), fiscal_tree) is None

    def test_content_fills_missing_company_and_period(self, tmp_path):
        path = tmp_path / "solto.txt"
        path.write_text(SPED_CONTENT, encoding="latin-1")
        source = analyze(path, ScannerConfig(), tmp_path)
        assert source.company_id == CNPJ
        assert (source.year, source.month) == (2025, 3)

    def test_path_wins_over_content(self, tmp_path):
        d = tmp_path / "empresa" / "OUTRA" / "2024" / "11"
        d.mkdir(parents=True)
        path = d / "efd.txt"
        path.write_text(SPED_CONTENT, encoding="latin-1")
        source = analyze(path, ScannerConfig(), tmp_path)
        assert source.company_id == "OUTRA"
        assert source.period == "202411"
