from __future__ import annotations

from unittest.mock import MagicMock, patch

from treasury_actions.server import run_entrypoint


@patch("treasury_actions.server.uvicorn")
@patch("treasury_actions.server.load_settings")
@patch("treasury_actions.server.configure_logging")
@patch("treasury_actions.transport.http_server.create_http_app")
def test_run_entrypoint_configures_logging_and_serves(
    mock_create_http_app: MagicMock,
    mock_log: MagicMock,
    mock_settings: MagicMock,
    mock_uvicorn: MagicMock,
) -> None:
    settings = MagicMock()
    settings.server.host = "0.0.0.0"
    settings.server.port = 8100
    mock_settings.return_value = settings

    run_entrypoint()

    mock_log.assert_called_once_with(settings)
    mock_create_http_app.assert_called_once_with()
    mock_uvicorn.run.assert_called_once_with(
        mock_create_http_app.return_value,
        host="0.0.0.0",
        port=8100,
        ws="none",
        log_config=None,
    )
