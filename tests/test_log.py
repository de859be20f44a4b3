import io
from datetime import datetime

from dbmigrate.cli.log import CliLog

TIMESTAMP_FORMAT = "%Y/%m/%d %H:%M:%S "
TIMESTAMP_LENGTH = 20


def _split_timestamp(output):
    prefix, message = output[:TIMESTAMP_LENGTH], output[TIMESTAMP_LENGTH:]
    stamp = datetime.strptime(prefix, TIMESTAMP_FORMAT)
    return stamp, message


def test_printf_plain_writes_formatted_message():
    buf = io.StringIO()
    CliLog(stream=buf).printf("%s (%s)\n", "1/u init", "2ms")
    assert buf.getvalue() == "1/u init (2ms)\n"


def test_printf_without_args_keeps_text():
    buf = io.StringIO()
    CliLog(stream=buf).printf("100% done")
    assert buf.getvalue() == "100% done"


def test_println_joins_with_spaces():
    buf = io.StringIO()
    CliLog(stream=buf).println("error:", ValueError("boom"))
    assert buf.getvalue() == "error: boom\n"


def test_println_without_args_is_newline():
    buf = io.StringIO()
    CliLog(stream=buf).println()
    assert buf.getvalue() == "\n"


def test_verbose_flag():
    assert CliLog(verbose=True).verbose() is True
    assert CliLog().verbose() is False


def test_verbose_printf_is_timestamped_and_terminated():
    buf = io.StringIO()
    CliLog(verbose=True, stream=buf).printf("Finished %s", "1/u init")
    stamp, message = _split_timestamp(buf.getvalue())
    assert message == "Finished 1/u init\n"
    assert stamp.year >= 2000


def test_verbose_println_is_timestamped():
    buf = io.StringIO()
    CliLog(verbose=True, stream=buf).println("a", 1)
    stamp, message = _split_timestamp(buf.getvalue())
    assert message == "a 1\n"
    assert stamp.year >= 2000


def test_verbose_does_not_double_newline():
    buf = io.StringIO()
    log = CliLog(verbose=True, stream=buf)
    log.printf("line\n")
    assert buf.getvalue().count("\n") == 1


def test_default_stream_is_stderr(capsys):
    CliLog().println("hello", "world")
    captured = capsys.readouterr()
    assert captured.err == "hello world\n"
    assert captured.out == ""