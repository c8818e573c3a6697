import io
import json
import unittest
from contextlib import redirect_stdout
from unittest.mock import patch

from supervision.wizard import main as cli
from supervision.wizard.errors import BackendError


class DemoCommandTests(unittest.TestCase):
    def test_demo_visit_is_sealed(self):
        output = io.StringIO()
        with redirect_stdout(output):
            exit_code = cli.main(["demo", "--guards-found", "1"])

        self.assertEqual(exit_code, 0)
        result = json.loads(output.getvalue())
        self.assertEqual(result["visit"]["status"], "completed")
        self.assertEqual(result["summary"]["photosUploaded"], 2)
        self.assertEqual(result["summary"]["findingsResolved"], 1)
        self.assertTrue(result["summary"]["anomalies"]["staffingMismatch"])

    def test_demo_failure_exit_code(self):
        output = io.StringIO()
        with patch.object(cli, "run_demo", side_effect=BackendError("createVisit", "HTTP 500", 500)), \
                redirect_stdout(output):
            exit_code = cli.main(["demo"])
        self.assertEqual(exit_code, 1)
        self.assertEqual(json.loads(output.getvalue())["error_type"], "BackendError")


class ServeCommandTests(unittest.TestCase):
    def test_invalid_config_refuses_to_serve(self):
        with patch.object(cli, "validate_config", return_value=["Backend timeout must be positive"]), \
                patch.object(cli, "serve") as serve:
            self.assertEqual(cli.main(["serve"]), 1)
        serve.assert_not_called()

    def test_serve_arguments(self):
        with patch.object(cli, "validate_config", return_value=[]), patch.object(cli, "serve") as serve:
            self.assertEqual(cli.main(["serve", "--port", "9000", "--backend", "memory"]), 0)
        serve.assert_called_once_with(cli.settings.server.host, 9000, "memory")


if __name__ == "__main__":
    unittest.main()
