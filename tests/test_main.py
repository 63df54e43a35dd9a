"""Test suite for the setup entry point"""

import main


def test_main_initialises_database(tmp_path, capsys):
    """Test the summary after first-run seeding"""
    db_path = str(tmp_path / 'setup.db')

    assert main.main(db_path) == 0
    output = capsys.readouterr().out
    assert 'Created 5 default user accounts' in output
    assert 'Risk Register (10 total)' in output
    assert 'Super Admin: 1' in output
    assert 'Active: simulation (Built-in)' in output

    # second run reuses the data
    assert main.main(db_path) == 0
    output = capsys.readouterr().out
    assert 'Created' not in output
    assert 'Risk Register (10 total)' in output
