import io
import logging

from nfsping import output
from nfsping.latency import LatencyRecorder
from nfsping.rpc import programs
from nfsping.rpc.programs import RPC
from nfsping.target import Target

NFS3 = programs.lookup(RPC.PROGRAM.NFS, 3)

def answered(values, mode = LatencyRecorder.HISTOGRAM):
    recorder = LatencyRecorder(mode)
    target = Target('www.test.com', '10.0.0.1')
    recorder.prepare(target, count = len(values) or 1)
    for index, value in enumerate(values):
        target.record_sent()
        if value is not None:
            target.record_received()
            recorder.record(target, value, index)
    return recorder, target

def make(cls, **settings):
    stream = io.StringIO()
    return cls(stream = stream, **settings), stream

def test_alive():
    sink, stream = make(output.AliveOutput)
    recorder, target = answered([350])
    sink.success(target, NFS3, 350, 1000.0)
    assert stream.getvalue() == 'www.test.com is alive (0.35 ms)\n'

def test_dead(caplog):
    sink, stream = make(output.AliveOutput)
    recorder, target = answered([None])
    with caplog.at_level(logging.ERROR):
        sink.loss(target, NFS3, 1000.0, 'Timed out')
    assert stream.getvalue() == 'www.test.com is dead\n'
    assert 'www.test.com : nfsv3 call failed: Timed out' in caplog.text

def test_ping_line():
    sink, stream = make(output.PingOutput)
    recorder, target = answered([300, 400])
    sink.success(target, NFS3, 400, 1000.0, 1)
    assert stream.getvalue() == 'www.test.com : [1], 0.40 ms (0.35 avg, 0% loss)\n'

def test_unixtime_prefix():
    sink, stream = make(output.UnixtimeOutput)
    recorder, target = answered([350])
    sink.success(target, NFS3, 350, 1000.5)
    assert stream.getvalue() == '[1000.500000] www.test.com : [0], 0.35 ms (0.35 avg, 0% loss)\n'

def test_ping_summary():
    sink, stream = make(output.PingOutput)
    recorder, target = answered([100, 200, 300, None])
    sink.final_summary([target], recorder, NFS3)
    assert stream.getvalue() == '\nwww.test.com : xmt/rcv/%loss = 4/3/25%, min/avg/max = 0.10/0.20/0.30\n'

def test_ping_interval_summary_has_percentiles():
    sink, stream = make(output.PingOutput)
    recorder, target = answered([100, 200, 300])
    sink.interval_summary([target], recorder, NFS3, 1000.0)
    assert stream.getvalue().endswith('50th = 0.20, 90th = 0.30, 99th = 0.30\n')

def test_fping_summary_marks_missing_results():
    sink, stream = make(output.FpingOutput)
    recorder, target = answered([100, None, 300], LatencyRecorder.RESULTS)
    sink.final_summary([target], recorder, NFS3)
    assert stream.getvalue() == '\nwww.test.com : 0.10 - 0.30\n'

def test_graphite():
    sink, stream = make(output.GraphiteOutput, prefix = 'nfsping')
    recorder, target = answered([350])
    sink.success(target, NFS3, 350, 1000.5)
    sink.loss(target, NFS3, 1001.0)
    assert stream.getvalue() == ('nfsping.com.test.www.nfsv3.usec 350 1000\n'
                                 'nfsping.com.test.www.nfsv3.lost 1 1001\n')

def test_graphite_interval_summary():
    sink, stream = make(output.GraphiteOutput, prefix = 'nfs')
    recorder, target = answered([100])
    sink.interval_summary([target], recorder, NFS3, 1000.0)
    assert stream.getvalue().splitlines() == [
        'nfs.com.test.www.nfsv3.p50 100 1000',
        'nfs.com.test.www.nfsv3.p90 100 1000',
        'nfs.com.test.www.nfsv3.p99 100 1000',
        'nfs.com.test.www.nfsv3.loss 0 1000',
    ]

def test_statsd():
    sink, stream = make(output.StatsdOutput, prefix = 'nfsping')
    recorder, target = answered([350])
    sink.success(target, NFS3, 350, 1000.0)
    sink.loss(target, NFS3, 1000.0)
    assert stream.getvalue() == 'nfsping.com.test.www.nfsv3:0.350|ms\nnfsping.com.test.www.nfsv3.lost:1|c\n'

def test_opentsdb():
    sink, stream = make(output.OpentsdbOutput)
    recorder, target = answered([350])
    sink.success(target, NFS3, 350, 1000.0)
    assert stream.getvalue() == 'put nfsping.usec 1000 350 ip=10.0.0.1 name=www.test.com protocol=nfsv3\n'
