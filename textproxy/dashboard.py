import threading

from rich import box
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from .logs import DashboardLogHandler
from .model.ProxyServer import ProxyServer
from .model.Core.stats import format_bytes

LEVEL_STYLES = {
    "DEBUG": "dim",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold red",
}


def _ms(value) -> str:
    return f"{value:.2f} ms" if value is not None else "N/A"


def build_dashboard(server: ProxyServer, log_handler: DashboardLogHandler) -> Table:
    stats = server.stats.snapshot()

    state = "[bold green]🟢 Running[/bold green]" if server.running else "[bold red]🔴 Stopped[/bold red]"
    status_panel = Panel(
        f"{state}\n"
        f"[bold]Port:[/bold] {server.port}\n"
        f"[bold]Uptime:[/bold] {stats['uptime']} sec\n"
        f"[bold]Active Connections:[/bold] {stats['active_connections']}\n"
        f"[bold]Total Connections:[/bold] {stats['total_connections']}\n"
        f"[bold]Errors:[/bold] {stats['errors']}",
        title="🌐 [bold cyan]Status[/bold cyan]",
        border_style="green",
        padding=(1, 2),
    )

    traffic_panel = Panel(
        f"[bold]↑ Sent:[/bold] {format_bytes(stats['traffic_sent'])}\n"
        f"[bold]↓ Received:[/bold] {format_bytes(stats['traffic_received'])}",
        title="📊 [bold blue]Traffic[/bold blue]",
        border_style="blue",
        padding=(1, 2),
    )

    response_panel = Panel(
        f"[bold]📈 Avg Response:[/bold] {_ms(stats['avg_response_ms'])}\n"
        f"[bold]📉 Min Response:[/bold] {_ms(stats['min_response_ms'])}\n"
        f"[bold]📈 Max Response:[/bold] {_ms(stats['max_response_ms'])}",
        title="⏱️ [bold magenta]Response Times[/bold magenta]",
        border_style="magenta",
        padding=(1, 2),
    )

    log_table = Table(title="🧾 [bold red]Recent Logs[/bold red]", expand=True, box=box.SIMPLE)
    log_table.add_column("Level", style="bold cyan", justify="center")
    log_table.add_column("Message", style="dim white", justify="left")
    for level, msg in list(log_handler.records):
        log_table.add_row(f"[{LEVEL_STYLES.get(level, 'white')}]{level}[/]", msg)

    grid = Table.grid(expand=True)
    grid.add_row(status_panel, traffic_panel)
    grid.add_row(response_panel)
    grid.add_row(log_table)
    return grid


def run_dashboard(server: ProxyServer, log_handler: DashboardLogHandler, stop_event: threading.Event) -> None:
    """Redraw the dashboard once a second until stop_event is set."""
    with Live(build_dashboard(server, log_handler), refresh_per_second=1, screen=True) as live:
        while not stop_event.wait(1):
            live.update(build_dashboard(server, log_handler))
