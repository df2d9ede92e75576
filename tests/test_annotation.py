import pytest

from shardraft import annotation as an


@pytest.fixture(autouse=True)
def fresh_test():
    an.annotate_test("demo", 3)
    yield


def _by_tag(records, tag):
    return [r for r in records if r.tag == tag]


def test_annotate_test_records_info():
    records = an.finalize_annotations("end")
    info = records[0]
    assert info.tag == an.TAG_INFO
    assert info.description == "demo (3 servers)"
    assert info.background_color == an.COLOR_INFO


def test_point_annotation_has_user_color_and_no_end():
    an.annotate("mine", "d", "det")
    rec = _by_tag(an.finalize_annotations("end"), "mine")
    assert len(rec) == 1
    assert rec[0].end == 0
    assert rec[0].background_color == an.COLOR_USER
    assert (rec[0].description, rec[0].details) == ("d", "det")


def test_interval_keeps_start():
    start = an.get_annotate_timestamp()
    an.annotate_interval("iv", start, "d", "det")
    rec = _by_tag(an.finalize_annotations("end"), "iv")[0]
    assert rec.start == start
    assert rec.end >= start


def test_continuous_spans_are_separated():
    an.annotate_continuous("c", "first", "first")
    an.annotate_continuous("c", "second", "second")
    recs = _by_tag(an.finalize_annotations("end"), "c")
    assert [r.description for r in recs] == ["first", "second"]
    assert recs[1].start == recs[0].end + 1000
    assert recs[1].end >= recs[1].start


def test_continuous_end_without_span_adds_nothing():
    an.annotate_continuous_end("none")
    assert _by_tag(an.finalize_annotations("end"), "none") == []


def test_continuous_end_closes_span():
    an.annotate_continuous("c", "x", "x")
    an.annotate_continuous_end("c")
    an.annotate_continuous_end("c")
    recs = _by_tag(an.finalize_annotations("end"), "c")
    assert len(recs) == 1
    assert recs[0].end >= recs[0].start


def test_checker_begin_then_success_is_interval():
    an.annotate_checker_begin("checking")
    an.annotate_checker_success("ok", "fine")
    an.annotate_checker_failure("bad", "broken")
    recs = _by_tag(an.finalize_annotations("end"), an.TAG_CHECKER)
    assert recs[0].details == "checking: fine"
    assert recs[0].background_color == an.COLOR_SUCCESS
    assert recs[0].end >= recs[0].start > 0
    # the begin mark is consumed, so the next outcome is a point
    assert recs[1].end == 0
    assert recs[1].details == "broken"
    assert recs[1].background_color == an.COLOR_FAILURE


def test_checker_neutral_point():
    an.annotate_checker_neutral("n", "d")
    recs = _by_tag(an.finalize_annotations("end"), an.TAG_CHECKER)
    assert recs[0].background_color == an.COLOR_NEUTRAL


def test_connection_change_annotates_partition():
    an.annotate_connection([True, False, True])
    recs = _by_tag(an.finalize_annotations("end"), an.TAG_PARTITION)
    assert len(recs) == 1
    assert recs[0].description == "partition = [1] [0 2]"
    assert recs[0].background_color == an.COLOR_FAULT


def test_unchanged_connection_adds_nothing():
    an.annotate_connection([True, True, True])
    assert _by_tag(an.finalize_annotations("end"), an.TAG_PARTITION) == []


def test_shutdown_and_restart():
    an.annotate_shutdown([2])
    an.annotate_shutdown([2])
    an.annotate_restart_all()
    recs = _by_tag(an.finalize_annotations("end"), an.TAG_PARTITION)
    assert len(recs) == 1
    assert recs[0].description == "partition = [0 1] / crash = [2]"
    assert recs[0].end >= recs[0].start


def test_shutdown_all_then_clear_failure():
    an.annotate_shutdown_all()
    an.annotate_clear_failure()
    recs = _by_tag(an.finalize_annotations("end"), an.TAG_PARTITION)
    assert len(recs) == 1
    assert "crash" in recs[0].description


def test_two_partitions():
    an.annotate_two_partitions([0, 1], [2])
    recs = _by_tag(an.finalize_annotations("end"), an.TAG_PARTITION)
    assert recs[0].description == "partition = [0 1] [2]"


def test_finalize_appends_closing_marker_and_marks_finalized():
    assert an.get_annotation_finalized() is False
    records = an.finalize_annotations("done")
    last = records[-1]
    assert last.tag == an.TAG_INFO
    assert last.description == "done"
    assert last.end == last.start + 1000
    assert an.get_annotation_finalized() is True
    an.annotate_test("again", 1)
    assert an.get_annotation_finalized() is False


def test_set_finalized():
    an.set_annotation_finalized()
    assert an.get_annotation_finalized() is True


def test_annotation_object_clear():
    obj = an.Annotation()
    obj.annotate_point("t", "d", "x", an.COLOR_INFO)
    obj.annotate_continuous("c", "d", "x", an.COLOR_INFO)
    assert len(obj.finalize()) == 2
    assert obj.is_finalized() is True
    obj.clear()
    assert obj.finalize() == []


def test_timestamp_increases():
    t1 = an.timestamp()
    t2 = an.get_annotate_timestamp()
    assert t2 >= t1


def test_framework_info_defaults():
    info = an.FrameworkInfo.for_servers(4)
    assert info.connected == [True] * 4
    assert info.crashed == [False] * 4