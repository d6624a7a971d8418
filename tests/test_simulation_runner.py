"""
Test the tick-driven simulation runner.
"""

import pytest

from simulation.data_structures import (
    Axis, Orientation, Position3D, BoundingBox, ProbeOperation, ProbeSequenceSettings,
    EndmillSize
)
from simulation.machine_geometry import calculate_tool_position
from simulation.simulation_runner import (
    SimulationRunner, SimulationContext, SimulationHaltedError, RunnerStatus,
    DEFAULT_TOOL_DIAMETER
)
from conftest import make_machine_settings

FAR_AWAY_STOCK = BoundingBox(Position3D(1000, 1000, 1000), Position3D(1010, 1010, 1010))


class LiveGeometry:
    """Mutable stand-in for the visualization store."""

    def __init__(self, stock=FAR_AWAY_STOCK, tool_diameter=2.0):
        self.stock = stock
        self.tool_diameter = tool_diameter
        self.stock_reads = 0

    def read_stock(self):
        self.stock_reads += 1
        return self.stock

    def context(self) -> SimulationContext:
        return SimulationContext(stock_box=self.read_stock,
                                 tool_diameter=lambda: self.tool_diameter)


def z_probe(op_id='probe-z', distance=10.0, feed_rate=100.0, backoff=2.0):
    return ProbeOperation(id=op_id, axis=Axis.Z, direction=-1, distance=distance,
                          feed_rate=feed_rate, backoff_distance=backoff)


def y_probe(op_id='probe-y', distance=10.0, feed_rate=600.0, backoff=1.0):
    return ProbeOperation(id=op_id, axis=Axis.Y, direction=-1, distance=distance,
                          feed_rate=feed_rate, backoff_distance=backoff)


def run_to_end(runner, delta_ms=100.0, limit=10000):
    runner.play()
    for _ in range(limit):
        if not runner.state.is_playing:
            break
        runner.tick(delta_ms)
    return runner.state


@pytest.fixture
def live():
    return LiveGeometry()


@pytest.fixture
def runner(live):
    return SimulationRunner(live.context())


class TestPlayback:

    def test_end_to_end_without_contact(self, runner):
        """Test a Z- probe reaches its full depth and backs off."""
        settings = make_machine_settings()
        start = Position3D(-43, -121, -39.5)
        sequence = ProbeSequenceSettings(initial_position=start)
        assert calculate_tool_position(settings, sequence, Orientation.HORIZONTAL) == \
            Position3D(-0.5, -121, -39.5)

        runner.load([z_probe()], start)
        runner.play()

        # Probe takes 10 / 100 mm/min = 6000 ms
        for _ in range(60):
            runner.tick(100)
        assert runner.state.current_position.z == pytest.approx(-49.5)
        assert runner.state.current_step_index == 1

        runner.tick(100)
        assert runner.state.current_position.z == pytest.approx(-47.5)
        assert runner.state.status == RunnerStatus.COMPLETE
        assert not runner.state.is_playing
        assert runner.state.contact_points == []

    def test_interpolates_linearly(self, runner):
        runner.load([z_probe()], Position3D(0, 0, 0))
        runner.play()
        runner.tick(1500)
        assert runner.state.current_position == Position3D(0, 0, -2.5)

    def test_tick_ignored_until_played(self, runner):
        runner.load([z_probe()], Position3D(0, 0, 0))
        runner.tick(1000)
        assert runner.state.current_position == Position3D(0, 0, 0)

    def test_speed_scales_time_not_distance(self, live):
        """Test trajectory samples are identical at different speeds."""
        slow = SimulationRunner(live.context())
        fast = SimulationRunner(live.context())
        for sim in (slow, fast):
            sim.load([z_probe()], Position3D(0, 0, 0))
            sim.play()
        fast.set_speed(4.0)

        fast.tick(250)
        slow.tick(1000)
        assert fast.state.current_position == slow.state.current_position

        assert run_to_end(fast).current_position == run_to_end(slow).current_position

    def test_pause_is_resumable(self, runner):
        runner.load([z_probe()], Position3D(0, 0, 0))
        runner.play()
        runner.tick(3000)
        runner.pause()
        assert runner.state.status == RunnerStatus.PAUSED

        runner.tick(3000)
        assert runner.state.current_position.z == pytest.approx(-5)

        runner.play()
        runner.tick(1500)
        assert runner.state.current_position.z == pytest.approx(-7.5)

    def test_play_after_complete_restarts(self, runner):
        runner.load([z_probe()], Position3D(0, 0, 0))
        run_to_end(runner)
        runner.play()
        assert runner.state.current_step_index == 0
        assert runner.state.status == RunnerStatus.RUNNING

    def test_zero_feed_rate_does_not_stall(self, runner):
        runner.load([z_probe(feed_rate=0)], Position3D(0, 0, 0))
        state = run_to_end(runner, delta_ms=16, limit=10)
        assert state.status == RunnerStatus.COMPLETE

    def test_negative_speed_ignored(self, runner):
        runner.load([z_probe()], Position3D(0, 0, 0))
        runner.set_speed(-2.0)
        assert runner.state.speed == 1.0

        runner.set_speed(float('nan'))
        assert runner.state.speed == 1.0

    def test_progress_never_runs_backwards(self, runner):
        """Test a negative time multiplier cannot move the tool before the step start."""
        runner.load([z_probe()], Position3D(0, 0, 0))
        runner.play()
        runner.state.speed = -2.0

        runner.tick(1000)
        assert runner.state.current_position == Position3D(0, 0, 0)

    def test_empty_sequence_cannot_play(self, runner):
        runner.load([], Position3D(0, 0, 0))
        runner.play()
        assert not runner.state.is_playing
        assert not runner.is_ready


class TestContact:

    def test_contact_stops_probe_at_face(self):
        """Test the probe stops where its leading edge meets the stock."""
        stock = BoundingBox(Position3D(-5, -5, -5), Position3D(5, 5, 5))
        live = LiveGeometry(stock=stock, tool_diameter=2.0)
        runner = SimulationRunner(live.context())
        # Start Y=14, travel 10 at 600 mm/min = 1000 ms, contact when Y = 6
        runner.load([y_probe()], Position3D(0, 14, 0))
        runner.play()

        runner.tick(300)   # Y = 11
        runner.tick(300)   # Y = 8
        runner.tick(300)   # Y = 5, past contact

        assert len(runner.state.contact_points) == 1
        contact = runner.state.contact_points[0]
        assert contact.probe_operation_id == 'probe-y'
        assert contact.axis == Axis.Y
        assert contact.position.x == pytest.approx(0)
        assert contact.position.y == pytest.approx(5)
        assert contact.position.z == pytest.approx(0)

        assert runner.state.current_position.y == pytest.approx(6)
        assert runner.state.current_step_index == 1

    def test_backoff_follows_contact(self):
        stock = BoundingBox(Position3D(-5, -5, -5), Position3D(5, 5, 5))
        runner = SimulationRunner(LiveGeometry(stock=stock).context())
        runner.load([y_probe()], Position3D(0, 14, 0))

        state = run_to_end(runner, delta_ms=50)

        assert state.status == RunnerStatus.COMPLETE
        assert len(state.contact_points) == 1
        # Backoff runs from the nominal probe end
        assert state.current_position.y == pytest.approx(5)

    def test_unreachable_target_completes_without_contact(self, runner, live):
        runner.load([z_probe()], Position3D(0, 0, 0))
        state = run_to_end(runner)
        assert state.contact_points == []
        assert state.current_position.z == pytest.approx(-8)
        assert live.stock_reads > 0

    def test_one_contact_per_probe(self):
        stock = BoundingBox(Position3D(-5, -5, -5), Position3D(5, 5, 5))
        runner = SimulationRunner(LiveGeometry(stock=stock).context())
        runner.load([y_probe('first'), y_probe('second', distance=3.0)], Position3D(0, 14, 0))

        state = run_to_end(runner, delta_ms=20)

        assert [c.probe_operation_id for c in state.contact_points] == ['first', 'second']

    def test_detection_waits_for_arming_progress(self):
        """Test no contact is checked at the very start of a probe step."""
        stock = BoundingBox(Position3D(-5, -5, -5), Position3D(5, 5, 5))
        live = LiveGeometry(stock=stock)
        runner = SimulationRunner(live.context())
        runner.load([y_probe()], Position3D(0, 6, 0))
        runner.play()

        runner.tick(50)  # 5 % progress
        assert live.stock_reads == 0
        assert runner.state.contact_points == []

        runner.tick(100)
        assert len(runner.state.contact_points) == 1
        assert runner.state.contact_points[0].position.y == 5
        assert runner.state.current_position.y == 6

    def test_face_crossed_before_arming_stays_flush(self):
        """Test a face passed before detection arms still gives a flush contact."""
        stock = BoundingBox(Position3D(-5, -5, -5), Position3D(5, 5, 5))
        runner = SimulationRunner(LiveGeometry(stock=stock).context())
        runner.load([y_probe()], Position3D(0, 6.3, 0))
        runner.play()

        runner.tick(50)   # Y = 5.8, leading edge already inside
        runner.tick(100)  # Y = 4.8, first checked tick

        contact = runner.state.contact_points[0]
        assert contact.position.y == 5
        assert runner.state.current_position.y == 6

    def test_coarse_ticks_cannot_pass_through_stock(self):
        """Test a tick longer than the stock thickness still registers contact."""
        stock = BoundingBox(Position3D(-10, -10, -51), Position3D(10, 10, -50))
        runner = SimulationRunner(LiveGeometry(stock=stock).context())
        positions = []
        runner.add_position_callback(positions.append)
        runner.load([z_probe(distance=100)], Position3D(0, 0, 0))
        runner.set_speed(10)

        # Each tick moves the tip about 7.8 mm; the stock is 1 mm thick
        state = run_to_end(runner, delta_ms=470)

        assert len(state.contact_points) == 1
        assert state.contact_points[0].position.z == -50
        assert Position3D(0, 0, -49) in positions

    def test_contact_independent_of_tick_size(self):
        stock = BoundingBox(Position3D(-10, -10, -51), Position3D(10, 10, -50))
        contacts = []
        for delta_ms in (16, 250, 3000):
            runner = SimulationRunner(LiveGeometry(stock=stock).context())
            runner.load([z_probe(distance=100)], Position3D(0, 0, 0))
            contacts.append(run_to_end(runner, delta_ms=delta_ms).contact_points)

        assert all(len(found) == 1 for found in contacts)
        assert all(found[0].position == Position3D(0, 0, -50) for found in contacts)

    def test_stock_changes_mid_step(self):
        """Test the latest stock geometry is used on every probing tick."""
        live = LiveGeometry(stock=FAR_AWAY_STOCK)
        runner = SimulationRunner(live.context())
        runner.load([y_probe()], Position3D(0, 14, 0))
        runner.play()

        runner.tick(300)
        assert runner.state.contact_points == []

        live.stock = BoundingBox(Position3D(-5, -5, -5), Position3D(5, 5, 5))
        runner.tick(300)
        runner.tick(300)
        assert len(runner.state.contact_points) == 1
        assert runner.state.contact_points[0].position.y == pytest.approx(5)

    def test_missing_tool_diameter_uses_default(self):
        stock = BoundingBox(Position3D(-5, -5, -5), Position3D(5, 5, 5))
        runner = SimulationRunner(LiveGeometry(stock=stock, tool_diameter=None).context())
        runner.load([y_probe()], Position3D(0, 14, 0))
        runner.play()
        runner.tick(300)
        runner.tick(300)

        contact = runner.state.contact_points[0]
        assert runner.state.current_position.y == pytest.approx(5 + DEFAULT_TOOL_DIAMETER / 2)
        assert contact.position.y == pytest.approx(5)

    def test_contact_callback(self):
        stock = BoundingBox(Position3D(-5, -5, -5), Position3D(5, 5, 5))
        runner = SimulationRunner(LiveGeometry(stock=stock).context())
        received = []
        runner.add_contact_callback(received.append)
        runner.load([y_probe()], Position3D(0, 14, 0))
        run_to_end(runner)
        assert len(received) == 1


class TestReset:

    def test_reset_clears_contacts(self):
        stock = BoundingBox(Position3D(-5, -5, -5), Position3D(5, 5, 5))
        runner = SimulationRunner(LiveGeometry(stock=stock).context())
        runner.load([y_probe()], Position3D(0, 14, 0))
        run_to_end(runner)
        assert runner.state.contact_points

        runner.reset()
        assert runner.state.contact_points == []
        assert runner.state.current_step_index == 0
        assert runner.state.current_position == Position3D(0, 14, 0)
        assert runner.state.status == RunnerStatus.IDLE

    def test_load_clears_contacts(self):
        stock = BoundingBox(Position3D(-5, -5, -5), Position3D(5, 5, 5))
        runner = SimulationRunner(LiveGeometry(stock=stock).context())
        runner.load([y_probe()], Position3D(0, 14, 0))
        run_to_end(runner)

        runner.load([z_probe()], Position3D(1, 2, 3))
        assert runner.state.contact_points == []
        assert runner.state.current_step_index == 0
        assert runner.state.current_position == Position3D(1, 2, 3)
        assert runner.state.is_active

    def test_stop_deactivates(self, runner):
        runner.load([z_probe()], Position3D(0, 0, 0))
        runner.play()
        runner.tick(1000)
        runner.stop()
        assert not runner.state.is_active
        assert not runner.state.is_playing
        assert runner.state.current_position == Position3D(0, 0, 0)


class TestStepControls:

    def test_seek_and_step(self, runner):
        runner.load([z_probe(), z_probe('second')], Position3D(0, 0, 0))

        runner.step_forward()
        assert runner.state.current_step_index == 1
        assert runner.state.current_position == Position3D(0, 0, -10)

        runner.seek(99)
        assert runner.state.current_step_index == 3

        runner.step_backward()
        assert runner.state.current_step_index == 2
        assert runner.state.current_position == Position3D(0, 0, -8)

        runner.seek(-5)
        assert runner.state.current_step_index == 0

    def test_seek_ignored_while_playing(self, runner):
        runner.load([z_probe()], Position3D(0, 0, 0))
        runner.play()
        runner.seek(1)
        assert runner.state.current_step_index == 0


class TestFailStop:

    def test_unexpected_error_halts_playback(self):
        def broken_stock():
            raise RuntimeError("store unavailable")

        runner = SimulationRunner(SimulationContext(stock_box=broken_stock,
                                                    tool_diameter=lambda: 2.0))
        runner.load([z_probe()], Position3D(0, 0, 0))
        runner.play()

        with pytest.raises(SimulationHaltedError) as excinfo:
            runner.tick(1000)

        assert not runner.state.is_playing
        assert runner.state.status == RunnerStatus.PAUSED
        assert excinfo.value.state is runner.state


class TestLiveSettingsContext:

    def test_context_reads_current_settings(self):
        settings = make_machine_settings(orientation=Orientation.VERTICAL)
        sequence = ProbeSequenceSettings(
            initial_position=Position3D(0, 14, 0),
            endmill_size=EndmillSize('2', 'mm', 2.0)
        )
        stock = {'size': (10, 10, 10), 'position': (0, 0, 0)}
        context = SimulationContext.from_live_settings(
            machine_settings=lambda: settings,
            probe_sequence=lambda: sequence,
            stock_size=lambda: stock['size'],
            stock_position=lambda: stock['position']
        )

        assert context.tool_diameter() == 2.0
        assert context.stock_box().axis_range(Axis.Y) == (-5, 5)

        stock['position'] = (0, 3, 0)
        assert context.stock_box().axis_range(Axis.Y) == (-2, 8)
