from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

import yaml

EXAMPLE_SCANNER = {
    "scanner": {
        "root": "/caminho/para/arquivos-fiscais",
        "allowed_extensions": [".xml", ".txt", ".sped", ".ecd", ".ecf", ".pdf"],
        "max_file_size_bytes": 100 * 1024 * 1024,
        "scan_interval_ms": 30000,
        "company_folder_keywords": ["empresa", "company", "cnpj"],
        "year_folder_hints": [],
        "producer": "meu_parser.sped:build_producer",
        "schedule_extractor": None,
        "processed_store": "file",
    }
}

EXAMPLE_RULES = {
    "icms": [
        {"priority": 10, "ncm": "12345678", "rate": 18, "base_reduction": 61.11,
         "benefit": "Base reduzida cesta basica"},
        {"priority": 20, "cfop": "5102", "rate": 17, "benefit": "Crédito outorgado 3%",
         "protege": True},
    ],
    "protege": {
        "active": True,
        "start_date": "2025-01-01",
        "rules": [
            {"priority": 1, "track": "PROTEGE_2", "rate": 2,
             "keywords": ["cerveja", "refrigerante"]},
            {"priority": 10, "track": "PROTEGE_15", "rate": 15,
             "benefits": [
                 {"code": "CIAP", "description": "Crédito de ICMS do ativo permanente",
                  "type": "CIAP", "active": True, "conditions": ["PROTEGE 15% ativo"]},
             ]},
        ],
    },
}


def _init_config() -> None:
    """Write example scanner and rule files to the config directory."""
    from apurador.config import get_config_dir, get_data_dir

    config_dir = get_config_dir()
    data_dir = get_data_dir()
    (config_dir / "rules").mkdir(parents=True, exist_ok=True)
    data_dir.mkdir(parents=True, exist_ok=True)

    copied = 0
    for rel, content in [
        ("scanner.yaml.example", EXAMPLE_SCANNER),
        ("rules/empresa-exemplo.yaml.example", EXAMPLE_RULES),
    ]:
        dest = config_dir / rel
        if dest.exists():
            print(f"  já existe: {dest}")
            continue
        dest.write_text(yaml.dump(content, default_flow_style=False, allow_unicode=True, sort_keys=False))
        print(f"  criado: {dest}")
        copied += 1

    print()
    print(f"Configuração: {config_dir}")
    print(f"Dados:   {data_dir}")
    if copied:
        print()
        print("Próximos passos:")
        print(f"  1. cp {config_dir / 'scanner.yaml.example'} {config_dir / 'scanner.yaml'}")
        print("  2. Configure o diretório raiz e o parser SPED (producer)")
        print("  3. Crie config/rules/<empresa>.yaml a partir do exemplo")
        print("  4. Execute: apurador scan --watch")


def _preflight() -> bool:
    """Verify minimal config before scanning. Auto-creates the data directory."""
    from apurador.config import get_config_dir, get_data_dir

    get_data_dir().mkdir(parents=True, exist_ok=True)
    config_dir = get_config_dir()
    if not config_dir.is_dir():
        print(f"Erro: diretório de configuração não encontrado: {config_dir}")
        print("Execute 'apurador init' para criar os arquivos de exemplo.")
        return False
    return True


def _load_items(path: Path):
    from apurador.models.item import CanonicalLineItem

    data = yaml.safe_load(path.read_text()) or []
    if isinstance(data, dict):
        data = data.get("items", [])
    return [CanonicalLineItem.from_dict(d) for d in data]


def _print_error(error: str | None, company_id: str) -> None:
    from apurador.config import list_companies

    print(f"Erro: {error}")
    companies = list_companies()
    if company_id not in companies:
        print(f"Empresas configuradas: {', '.join(companies) or 'nenhuma'}")


def _ledger():
    from apurador.config import get_ledger_path
    from apurador.utils.ledger import JsonFileStore, PeriodCreditLedger

    return PeriodCreditLedger(JsonFileStore(get_ledger_path()))


def _build_scanner(config):
    from apurador.config import get_processed_path
    from apurador.services.collaborators import ConfiguredScheduleExtractor, build_collaborator
    from apurador.services.dispatch import Dispatcher
    from apurador.services.rule_repository import RuleRepository
    from apurador.services.scanner import Scanner
    from apurador.utils.processed import JsonProcessedFiles, MemoryProcessedFiles

    repository = RuleRepository()
    producer = build_collaborator(config.producer)
    if config.schedule_extractor:
        extractor = build_collaborator(config.schedule_extractor)
    else:
        extractor = ConfiguredScheduleExtractor(repository)
    if config.processed_store == "file":
        processed = JsonProcessedFiles(get_processed_path())
    else:
        processed = MemoryProcessedFiles()
    dispatcher = Dispatcher(repository, _ledger(), producer, extractor)
    return Scanner(config, dispatcher, processed)


def _cmd_scan(args: argparse.Namespace) -> int:
    from apurador.config import load_scanner_config
    from apurador.services.exceptions import CollaboratorError

    if not _preflight():
        return 1
    config = load_scanner_config()
    root = Path(args.root) if args.root else config.root
    if root is None:
        print("Erro: informe o diretório raiz ou configure scanner.root")
        return 1
    if not config.producer:
        print("Erro: configure scanner.producer (parser SPED, formato modulo:fabrica)")
        return 1
    try:
        scanner = _build_scanner(config)
    except CollaboratorError as e:
        print(f"Erro: {e}")
        return 1

    if not args.watch:
        report = scanner.scan(root)
        print(f"Arquivos: {report.discovered}  novos: {len(report.dispatched)}  "
              f"falhas: {len(report.failed)}")
        return 1 if report.failed else 0

    scanner.start(root)
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print()
    finally:
        scanner.stop()
    return 0


def _cmd_icms(args: argparse.Namespace) -> int:
    from apurador.services.apuracao import calculate_icms
    from apurador.services.rule_repository import RuleRepository
    from apurador.utils.formatters import format_brl

    if not _preflight():
        return 1
    result = calculate_icms(args.company, _load_items(Path(args.items)), RuleRepository())
    if result.status != "calculado":
        _print_error(result.error, args.company)
        return 1
    for d in result.details:
        print(f"  {d.item.document:<12} {d.item.ncm:<9} {d.item.cfop:<5} "
              f"{format_brl(d.tax_due):>16}  {d.label}")
    print(f"Total ICMS: {format_brl(result.total)}")
    return 0


def _cmd_protege(args: argparse.Namespace) -> int:
    from apurador.services.apuracao import calculate_protege
    from apurador.services.reports import benefits_report
    from apurador.services.rule_repository import RuleRepository
    from apurador.utils.formatters import format_brl, format_period

    if not _preflight():
        return 1
    run = calculate_protege(
        args.company, args.period, RuleRepository(), _ledger(), items=_load_items(Path(args.items))
    )
    if run.status != "calculado":
        _print_error(run.error, args.company)
        return 1
    r = run.result
    print(f"PROTEGE {args.company} - {format_period(r.period)}")
    print(f"  PROTEGE 15% (líquido): {format_brl(r.total_protege15)}")
    print(f"  Benefícios:            {format_brl(r.total_benefits)}")
    print(f"  PROTEGE 2% pagamento:  {format_brl(r.protege2_payment)}")
    print(f"  PROTEGE 2% crédito:    {format_brl(r.protege2_credit)}")
    print(f"  Saldo PROTEGE 2%:      {format_brl(r.saldo_protege2)}")
    print(f"  Valor final:           {format_brl(r.valor_final)}")
    for tipo, valor in benefits_report(r)["beneficios_por_tipo"].items():
        print(f"    {tipo:<18} {format_brl(valor)}")
    return 0


def _cmd_relatorio(args: argparse.Namespace) -> int:
    from apurador.services.reports import cross_credit_report, ledger_history
    from apurador.utils.formatters import format_brl, format_period

    if not _preflight():
        return 1
    ledger = _ledger()
    try:
        history = ledger_history(ledger, args.company, args.start, args.end)
        report = cross_credit_report(history, args.start, args.end)
    except ValueError as e:
        print(f"Erro: {e}")
        return 1
    for row in report["detalhes_por_periodo"]:
        print(f"  {format_period(row['periodo'])}  pago {format_brl(row['pagamento']):>14}  "
              f"crédito {format_brl(row['credito']):>14}  saldo {format_brl(row['saldo']):>14}")
    resumo = report["resumo"]
    print(f"Total pago: {format_brl(resumo['total_pagamentos'])}  "
          f"créditos: {format_brl(resumo['total_creditos'])}  "
          f"saldo: {format_brl(resumo['saldo_acumulado'])}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="apurador", description="Apuração ICMS e PROTEGE")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="cria arquivos de configuração de exemplo")

    p = sub.add_parser("scan", help="varre o diretório de arquivos fiscais")
    p.add_argument("root", nargs="?", help="diretório raiz (padrão: scanner.root)")
    p.add_argument("--watch", action="store_true", help="continua varrendo no intervalo configurado")
    p.set_defaults(func=_cmd_scan)

    p = sub.add_parser("icms", help="apura ICMS de uma lista de itens")
    p.add_argument("company")
    p.add_argument("--items", required=True, help="arquivo JSON/YAML com itens canônicos")
    p.set_defaults(func=_cmd_icms)

    p = sub.add_parser("protege", help="calcula PROTEGE de um período")
    p.add_argument("company")
    p.add_argument("period", help="YYYYMM")
    p.add_argument("--items", required=True, help="arquivo JSON/YAML com itens canônicos")
    p.set_defaults(func=_cmd_protege)

    p = sub.add_parser("relatorio", help="relatório de crédito cruzado PROTEGE 2%%")
    p.add_argument("company")
    p.add_argument("start", help="YYYYMM")
    p.add_argument("end", help="YYYYMM")
    p.set_defaults(func=_cmd_relatorio)
    return parser


def main() -> None:
    """Entry point for the apurador CLI."""
    from apurador.config import get_log_level

    args = build_parser().parse_args()
    logging.basicConfig(
        level=get_log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command == "init":
        _init_config()
        return
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
