"""外部条件探测测试"""

from __future__ import annotations

import pytest

from brewkit.core.dep.requirements import CommandRequirement, LanguageModuleRequirement
from brewkit.core.exceptions import ValidationError
from brewkit.utils.shell import CommandResult


class TestLanguageModuleRequirement:
    def test_probe_satisfied(self, fake_executor) -> None:
        req = LanguageModuleRequirement("PyYAML", "python", import_name="yaml")
        assert req.fatal is True
        assert req.satisfied(fake_executor)
        assert fake_executor.commands == [["python3", "-c", "import yaml"]]

    def test_probe_failed(self, fake_executor) -> None:
        fake_executor.results["perl"] = CommandResult(returncode=2, stderr="Can't locate")
        req = LanguageModuleRequirement("XML::Parser", "perl")
        assert not req.satisfied(fake_executor)
        assert "cpan -i XML::Parser" in req.message

    @pytest.mark.parametrize(("language", "argv0"), [
        ("node", "node"),
        ("lua", "luarocks"),
        ("ruby", "ruby"),
        ("chicken", "csi"),
    ])
    def test_probe_command_per_language(self, language: str, argv0: str) -> None:
        cmd = LanguageModuleRequirement("mod", language).probe_command()
        assert cmd[0] == argv0
        assert any("mod" in arg for arg in cmd)

    def test_unknown_language(self) -> None:
        with pytest.raises(ValidationError, match="不支持的语言"):
            LanguageModuleRequirement("x", "cobol")


class TestCommandRequirement:
    def test_present_command(self, fake_executor) -> None:
        assert CommandRequirement("sh").satisfied(fake_executor)
        # 只查 PATH，不启动子进程
        assert fake_executor.calls == []

    def test_missing_command(self, fake_executor) -> None:
        req = CommandRequirement("definitely-not-a-real-command-xyz", hint="装一下")
        assert req.fatal is False
        assert not req.satisfied(fake_executor)
        assert "装一下" in req.message
